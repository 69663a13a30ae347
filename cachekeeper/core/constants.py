"""Core constants: key namespace defaults and marker defaults.

Single source of truth for default values used by the key registry,
the declarative scanner and the interception markers.
"""

# Namespace defaults (NamespaceConfig)
DEFAULT_KEY_PREFIX = "default"
DEFAULT_KEY_SEP = ":"

# Leading character that turns a method expression into a full side-effect expression
EXPRESSION_MARKER = "@"

# Collaborator method names used when a marker does not name one
DEFAULT_EXPIRE_METHOD = "expire_all"
DEFAULT_UPDATE_METHOD = "update"

# Method-name substrings that trigger expiry when expire_cache is given no include rules
DEFAULT_EXPIRE_INCLUDE_VALUES: tuple[str, ...] = ("add", "update", "delete")

# Identifier token separator used to derive key name segments (USER_LIST -> user, list)
IDENTIFIER_TOKEN_SEP = "_"

# Expression name bound to the collaborator lookup function; reserved, never a parameter name
EXPRESSION_SERVICE_FUNC = "__collaborator__"

# Expression variable holding the intercepted call's return value (update only)
EXPRESSION_RESULT_VAR = "result"

# Attribute names used to attach declarations to classes and wrappers
CACHE_KEYS_ATTR = "__cache_keys__"
EXPIRE_RULE_ATTR = "__cache_expire__"
UPDATE_RULE_ATTR = "__cache_update__"

# Redis UNLINK batch size for keyspace expiry
REDIS_UNLINK_CHUNK = 500

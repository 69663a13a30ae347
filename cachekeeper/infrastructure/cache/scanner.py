"""Declarative key scanner: class/field markers -> KeyRegistry entries.

Runs once at startup. Two modes:

- Constant classes (keys_constant=True): every public UPPER_CASE str
  attribute defined on the class is registered under its value, with
  name segments derived from its identifier (USER_LIST -> user, list).
  Members annotated with ExcludeKey are skipped.
- Field markers: class attributes annotated Annotated[str, KeyField(...)]
  are registered one by one, inheriting prefix/separator/second_prefix
  from the class marker when inherit_prefix is set.

Blank logical keys fall back to the lower-cased identifier and colliding
logical keys keep the last value; both log a warning, or raise
KeyRegistrationException when settings.strict_key_registration is set.
"""

from __future__ import annotations

import importlib
import inspect
import logging
import pkgutil
import typing
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from types import ModuleType
from typing import Any, TypeVar

from cachekeeper.core.config import Settings, get_settings
from cachekeeper.core.constants import CACHE_KEYS_ATTR, IDENTIFIER_TOKEN_SEP
from cachekeeper.domain.declarations import ExcludeKey, KeyDeclaration, is_marker
from cachekeeper.domain.exceptions import KeyRegistrationException
from cachekeeper.infrastructure.cache.keys import KeyEntry, KeyRegistry, compose_key

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=type)

# Classes decorated with cache_keys, in decoration order.
_declared_classes: list[type] = []


def cache_keys(
    *,
    prefix: str | None = None,
    second_prefix: str | None = None,
    separator: str | None = None,
    name: str = "",
    as_name: bool = False,
    inherit_prefix: bool = True,
    keys_constant: bool = False,
) -> Callable[[T], T]:
    """Class decorator declaring the key namespace of a class.

    Args:
        prefix: Key prefix; None uses the registry prefix.
        second_prefix: Second-level prefix shared by the class's keys.
        separator: Segment separator; None uses the registry separator.
        name: Name segment (field markers only).
        as_name: Derive name segments from the identifier (field markers only).
        inherit_prefix: Field markers only; ignored on classes.
        keys_constant: Register every public UPPER_CASE str attribute of the
            class. Other public str attributes (mixed or lower case) are
            not keys and are skipped with a DEBUG log.

    Returns:
        Decorator that records the declaration and returns the class unchanged.
    """
    declaration = KeyDeclaration(
        prefix=prefix,
        second_prefix=second_prefix,
        separator=separator,
        name=name,
        as_name=as_name,
        inherit_prefix=inherit_prefix,
        keys_constant=keys_constant,
    )

    def decorator(cls: T) -> T:
        setattr(cls, CACHE_KEYS_ATTR, declaration)
        _declared_classes.append(cls)
        return cls

    return decorator


def declared_classes() -> tuple[type, ...]:
    """Return classes decorated with cache_keys so far."""
    return tuple(_declared_classes)


def class_declaration(cls: type) -> KeyDeclaration | None:
    """Return the marker declared on cls itself (not inherited from a base)."""
    declaration = cls.__dict__.get(CACHE_KEYS_ATTR)
    return declaration if isinstance(declaration, KeyDeclaration) else None


def derive_name_segments(identifier: str) -> list[str]:
    """Split an identifier on '_' and lower-case each token (USER_LIST -> user, list)."""
    return [token.lower() for token in identifier.split(IDENTIFIER_TOKEN_SEP) if token]


def _member_metadata(cls: type) -> dict[str, tuple[Any, ...]]:
    """Return Annotated metadata per attribute annotated directly on cls."""
    own = inspect.get_annotations(cls)
    if not own:
        return {}
    try:
        hints = typing.get_type_hints(cls, include_extras=True)
    except NameError as e:
        logger.warning("Unresolvable annotations on %s (%s); field markers ignored", cls.__qualname__, e)
        return {}
    return {
        attr: getattr(hint, "__metadata__", ())
        for attr, hint in hints.items()
        if attr in own
    }


def _is_constant(attr: str, value: Any) -> bool:
    return not attr.startswith("_") and attr.isupper() and isinstance(value, str)


@dataclass(frozen=True)
class _MarkedField:
    attr: str
    value: Any
    declaration: KeyDeclaration


class KeyScanner:
    """Populates a KeyRegistry from declared classes.

    One scanner tracks the origin of every logical key it registered so
    that collisions across classes are reported as well. A class is
    scanned at most once per scanner.
    """

    def __init__(self, registry: KeyRegistry, settings: Settings | None = None) -> None:
        self.registry = registry
        self.settings = settings or get_settings()
        self._origins: dict[str, str] = {}
        self._scanned: set[type] = set()

    def scan_declared(self) -> list[KeyEntry]:
        """Scan every class decorated with cache_keys."""
        return self.scan_classes(declared_classes())

    def scan_classes(self, classes: Iterable[type]) -> list[KeyEntry]:
        entries: list[KeyEntry] = []
        for cls in classes:
            entries.extend(self.scan_class(cls))
        return entries

    def scan_module(self, module: ModuleType) -> list[KeyEntry]:
        """Scan classes defined in module that carry a class or field marker."""
        classes = [
            obj
            for obj in vars(module).values()
            if inspect.isclass(obj)
            and obj.__module__ == module.__name__
            and self.is_declared(obj)
        ]
        return self.scan_classes(classes)

    def scan_package(self, package_name: str) -> list[KeyEntry]:
        """Import package_name and all its submodules, scanning each one."""
        package = importlib.import_module(package_name)
        entries = self.scan_module(package)
        for info in pkgutil.walk_packages(
            getattr(package, "__path__", []), prefix=f"{package_name}."
        ):
            entries.extend(self.scan_module(importlib.import_module(info.name)))
        logger.info(
            "Scanned package %s: %s cache keys registered", package_name, len(entries)
        )
        return entries

    def is_declared(self, cls: type) -> bool:
        if class_declaration(cls) is not None:
            return True
        return any(self._marked_fields(cls))

    def scan_class(self, cls: type) -> list[KeyEntry]:
        """Register the keys declared on cls.

        Returns:
            Entries registered for this class, in processing order.
        """
        if cls in self._scanned:
            return []
        self._scanned.add(cls)
        declaration = class_declaration(cls)
        if declaration is not None and declaration.keys_constant:
            return self._scan_constants(cls, declaration)
        return [
            self._register_field(cls, field, declaration)
            for field in self._marked_fields(cls)
        ]

    def _scan_constants(self, cls: type, declaration: KeyDeclaration) -> list[KeyEntry]:
        metadata = _member_metadata(cls)
        separator = self._separator(declaration.separator)
        prefix = self._prefix(declaration.prefix)
        entries = []
        for attr, value in vars(cls).items():
            if not _is_constant(attr, value):
                if isinstance(value, str) and not attr.startswith("_"):
                    logger.debug(
                        "Cache key constant skipped (not UPPER_CASE): %s.%s",
                        cls.__qualname__,
                        attr,
                    )
                continue
            if any(is_marker(meta, ExcludeKey) for meta in metadata.get(attr, ())):
                logger.debug("Cache key constant excluded: %s.%s", cls.__qualname__, attr)
                continue
            physical_key = compose_key(
                separator,
                prefix,
                declaration.second_prefix or "",
                *derive_name_segments(attr),
            )
            entries.append(self._register(cls, attr, value, physical_key))
        return entries

    def _marked_fields(self, cls: type) -> Iterable[_MarkedField]:
        for attr, metadata in _member_metadata(cls).items():
            for meta in metadata:
                if isinstance(meta, KeyDeclaration):
                    yield _MarkedField(attr, cls.__dict__.get(attr), meta)
                    break

    def _register_field(
        self,
        cls: type,
        field: _MarkedField,
        class_decl: KeyDeclaration | None,
    ) -> KeyEntry:
        decl = field.declaration
        inherits = decl.inherit_prefix and class_decl is not None
        if inherits:
            prefix = self._prefix(class_decl.prefix)
            separator = self._separator(class_decl.separator)
        else:
            prefix = self._prefix(decl.prefix)
            separator = self._separator(decl.separator)

        if decl.second_prefix is not None:
            second_prefix = decl.second_prefix
        elif inherits:
            second_prefix = class_decl.second_prefix or ""
        else:
            second_prefix = ""

        name_segments = [decl.name] if decl.name else []
        if decl.as_name:
            name_segments.extend(derive_name_segments(field.attr))

        physical_key = compose_key(separator, prefix, second_prefix, *name_segments)
        return self._register(cls, field.attr, field.value, physical_key)

    def _register(self, cls: type, attr: str, value: Any, physical_key: str) -> KeyEntry:
        origin = f"{cls.__module__}.{cls.__qualname__}.{attr}"
        logical_key = value if isinstance(value, str) else ""
        if not logical_key.strip():
            self._report(
                f"Blank logical key for {origin}; using {attr.lower()!r}",
                attr,
            )
            logical_key = attr.lower()
        previous = self._origins.get(logical_key)
        if previous is not None and previous != origin:
            self._report(
                f"Logical key {logical_key!r} of {origin} collides with {previous}; "
                "last registration wins",
                logical_key,
            )
        self._origins[logical_key] = origin
        return self.registry.register_physical_key(logical_key, physical_key)

    def _report(self, message: str, logical_key: str) -> None:
        if self.settings.strict_key_registration:
            raise KeyRegistrationException(message, logical_key)
        logger.warning(message)

    def _prefix(self, value: str | None) -> str:
        return self.registry.prefix if value is None else value

    def _separator(self, value: str | None) -> str:
        return self.registry.separator if value is None else value

"""Infrastructure: key registry, scanner, expressions, container, Redis keyspace."""

"""Domain: exceptions, declaration markers and invocation context."""

"""Application layer: interception rules, engine and decorators."""

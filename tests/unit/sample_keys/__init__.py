"""Key declarations used by package-scanning tests."""

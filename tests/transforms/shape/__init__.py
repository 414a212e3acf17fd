"""Shape-transform rule family tests."""

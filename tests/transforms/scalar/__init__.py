"""Scalar rule family tests."""

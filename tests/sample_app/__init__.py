"""Minimal application used by the resolver integration tests."""

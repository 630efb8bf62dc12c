"""Core primitives (errors)."""

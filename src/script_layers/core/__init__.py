"""Core primitives: error taxonomy and self-logging."""

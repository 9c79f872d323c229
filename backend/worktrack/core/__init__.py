"""Core configuration, exceptions and authorization primitives."""

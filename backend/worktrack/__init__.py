"""Work-tracking backend core: soft-delete cascade and scope-based authorization."""

__version__ = "0.1.0"

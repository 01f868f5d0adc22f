"""plugdex - install and upgrade plugins from a plugin index."""

__version__ = "0.1.0"

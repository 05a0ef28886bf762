"""adspot - find known advertisements inside recorded broadcasts."""

__version__ = "0.1.0"

"""vouch: content-addressed validation cache backed by git notes."""

__version__ = "0.1.0"

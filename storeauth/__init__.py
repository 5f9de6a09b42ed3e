"""storeauth: hierarchical authorization for multi-store organizations."""

__version__ = "0.1.0"

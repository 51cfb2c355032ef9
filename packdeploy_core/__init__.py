"""Platform bootstrap and upgrade engine for deployment packs."""

__version__ = "0.1.0"

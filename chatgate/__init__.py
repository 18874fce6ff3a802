"""Multi-tenant chat network gateway."""

__version__ = "0.1.0"

"""CLI commands."""

from . import balance, deposit, init, purge, serve, sessions, token

__all__ = ["balance", "deposit", "init", "purge", "serve", "sessions", "token"]

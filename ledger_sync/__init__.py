"""Offline-first synchronization core for the ledger web application."""

__version__ = "1.0.0"

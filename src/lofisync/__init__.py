"""lofisync - Offline-first sync engine for operations and QSO logs."""

__version__ = "0.1.0"

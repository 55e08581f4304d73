"""Client module - Local store, HTTP client and sync engine."""

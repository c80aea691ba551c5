"""Command-line interface for offline-sync."""

"""Geo order service: provider synchronization and notification delivery."""

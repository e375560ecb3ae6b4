"""Sync of the local note store with the backend tables."""

"""Shared infrastructure: configuration, credentials and retry."""

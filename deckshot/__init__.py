"""Concurrent multipart uploader for captured slide-deck pages."""

__version__ = "1.0.0"

"""Shared helpers: logging, exceptions, datetime and validation."""

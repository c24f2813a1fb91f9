"""Shared primitives: errors, structured logging, settings."""

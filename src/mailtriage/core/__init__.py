"""Shared error types and logging setup."""

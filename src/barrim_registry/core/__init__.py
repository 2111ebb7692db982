"""Core enums, errors and injectable providers."""

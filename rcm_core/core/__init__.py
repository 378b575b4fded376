"""Core enumerations and settings."""

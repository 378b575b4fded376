"""Shared utilities: errors, logging, money and date helpers."""

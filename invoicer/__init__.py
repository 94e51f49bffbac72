"""Bulk invoice automation service for the inventory accounting API."""

__version__ = "0.1.0"

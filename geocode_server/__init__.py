"""Reverse geocoding over an in-memory spatial index."""

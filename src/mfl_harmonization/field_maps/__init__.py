"""Versioned per-source field maps."""

"""Batch harmonization jobs."""

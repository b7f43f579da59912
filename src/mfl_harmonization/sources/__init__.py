"""Readers for tabular facility lists and published sheets."""

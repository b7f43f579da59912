"""Bundled draft-07 schema documents."""

"""Tableside order core application package."""

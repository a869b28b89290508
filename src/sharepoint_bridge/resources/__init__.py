"""Caller-facing document library operations."""

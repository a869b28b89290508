"""Caller token validation shared by every transport."""

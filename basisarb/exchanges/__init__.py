"""Venue clients, request signing and rate limiting."""

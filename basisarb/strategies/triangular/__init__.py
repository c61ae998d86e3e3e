"""Triangular arbitrage strategy."""

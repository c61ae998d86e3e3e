"""Spot/perpetual basis and triangular arbitrage bot."""

__version__ = "0.3.0"

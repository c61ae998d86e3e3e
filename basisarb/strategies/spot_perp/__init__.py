"""Spot to perpetual basis strategy."""

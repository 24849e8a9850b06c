"""Cashu POS: point-of-sale gateway for Cashu ecash payments."""

__version__ = "0.1.0"

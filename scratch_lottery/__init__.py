"""Scratch Lottery - prize determination and payout engine."""

__version__ = "0.1.0"

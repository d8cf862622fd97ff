"""Seek — bounty resolution backend for a stake-and-photograph game."""

__version__ = "0.1.0"

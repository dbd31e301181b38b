"""Statekeeper - consistent network state from primary/fallback Ethereum clients."""

__version__ = "0.1.0"

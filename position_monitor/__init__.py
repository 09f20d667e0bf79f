"""Event-sourced DeFi lending position monitor."""

__version__ = "0.2.0"

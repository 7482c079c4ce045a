"""Real-time synchronization client for the trading bridge."""

__version__ = "0.1.0"

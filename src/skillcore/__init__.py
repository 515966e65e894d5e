"""skillcore: skill extension and capability-security runtime for agents."""

__version__ = "0.1.0"

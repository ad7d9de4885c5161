"""Car simulator: simulated vehicles, routing, charging and service clients."""

__version__ = "0.1.0"
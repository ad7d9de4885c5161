"""Fleet service: vehicle storage, dispatch, HTTP API and telemetry consumer."""

__version__ = "0.1.0"
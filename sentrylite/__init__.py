"""DSN, auth and project id types, hex values, hubs, HTTP middleware and tracing integration."""

__version__ = "0.1.0"

__all__ = [
    "auth",
    "dsn",
    "hexnum",
    "hub",
    "project_id",
    "tower_http",
    "tracing_converters",
    "tracing_layer",
]
"""Scanner option handling, DB update checks and artifact cache clients."""

__version__ = "0.1.0"

__all__ = [
    "artifact",
    "client",
    "commands",
    "dbclient",
    "eol",
    "operation",
    "options",
    "remote",
    "types",
]
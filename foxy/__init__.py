"""HTTP proxy building blocks: predicate routing, security chain, server and health endpoints."""

__version__ = "0.2.16"
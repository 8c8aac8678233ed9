"""Exchange connectors."""

from .okx import OKXAuth, OKXClient, OKXCredentials

__all__ = ["OKXAuth", "OKXClient", "OKXCredentials"]

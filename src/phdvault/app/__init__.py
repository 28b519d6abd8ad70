"""Vault API application package."""

from .main import create_app
from .settings import VaultSettings

__all__ = ["VaultSettings", "create_app"]

"""SQLAlchemy models for the CreatorHub gateway."""

from .wallet import LinkedWallet

__all__ = ["LinkedWallet"]

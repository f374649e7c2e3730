"""Core configuration for Sparks."""

from sparks.core.config import CryptoConfig

__all__ = ["CryptoConfig"]

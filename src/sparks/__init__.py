"""Sparks - end-to-end encryption core for the Sparks messenger."""

__version__ = "0.1.0"

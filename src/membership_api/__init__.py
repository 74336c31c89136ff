"""Membership platform sub-role authorization service."""

__version__ = "0.4.0"

"""Operator CLI for the Technifold outbox."""

__version__ = "1.0.0"

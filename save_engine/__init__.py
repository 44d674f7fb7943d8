"""Persistent save engine — slot store, backup rotation and save migrations."""

__version__ = "0.3.0"

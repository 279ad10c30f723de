"""Stores, P4 table programming and configuration for offloaded pod networking."""

__version__ = "0.1.0"
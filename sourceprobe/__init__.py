"""Tiered availability probing and ranking of keyword search sources."""

__version__ = "1.0.0"

"""Shared helpers: logging, JSON, clocks and pipeline statistics."""

"""CLI package public API."""

from xmlaggregator.cli.click_app import AppEnv, cli

__all__ = ["AppEnv", "cli"]

"""Sandbox account inventory and lifecycle orchestration API."""

__version__ = "0.1.0"

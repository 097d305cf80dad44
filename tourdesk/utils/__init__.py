"""Shared utilities for the booking core."""

from .config import TourdeskConfig, load_config, get_config, reset_config

__all__ = ["TourdeskConfig", "load_config", "get_config", "reset_config"]

"""Utility functions for gitdeploy."""

from gitdeploy.utils.helpers import describe_path, setup_logging

__all__ = ["describe_path", "setup_logging"]

"""Post-update command runner."""

from gitdeploy.commander.commander import Command, Commander

__all__ = ["Command", "Commander"]

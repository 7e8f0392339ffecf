"""
gitdeploy - keep a git checkout in sync and redeploy on every update.
"""

__version__ = "0.1.0"
__logo__ = "🚚"

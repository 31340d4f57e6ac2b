"""OpenCode Usage - token, cost and activity reports for OpenCode sessions."""

__version__ = "1.0.0"

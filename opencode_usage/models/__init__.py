"""Data models for OpenCode Usage."""

"""Aggregation and reporting services for OpenCode Usage."""

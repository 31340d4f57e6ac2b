"""Storage, normalization and filtering utilities for OpenCode Usage."""

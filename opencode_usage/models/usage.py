"""Canonical usage event models for OpenCode Usage."""

from typing import Optional

from pydantic import BaseModel, Field, computed_field

ASSISTANT_ROLE = "assistant"
USER_ROLE = "user"


class TokenUsage(BaseModel):
    """Model for token usage data."""

    input: int = Field(default=0, ge=0)
    output: int = Field(default=0, ge=0)
    reasoning: int = Field(default=0, ge=0, description="Reasoning tokens")
    cache_read: int = Field(default=0, ge=0)
    cache_write: int = Field(default=0, ge=0)

    @computed_field
    @property
    def total(self) -> int:
        """Sum of every token category, reasoning included."""
        return (
            self.input
            + self.output
            + self.reasoning
            + self.cache_read
            + self.cache_write
        )

    def add(self, other: "TokenUsage") -> None:
        """Accumulate another usage record into this one in place."""
        self.input += other.input
        self.output += other.output
        self.reasoning += other.reasoning
        self.cache_read += other.cache_read
        self.cache_write += other.cache_write


class UsageEvent(BaseModel):
    """One normalized message record.

    Every numeric field is fully defaulted, so downstream stages never
    handle missing values.
    """

    id: str
    session_id: str
    role: str = Field(default="", description="user, assistant, or anything else")
    model_id: Optional[str] = Field(default=None)
    provider_id: Optional[str] = Field(default=None)
    agent_id: Optional[str] = Field(default=None)
    tokens: TokenUsage = Field(default_factory=TokenUsage)
    cost: float = Field(default=0.0, ge=0)
    created_at: int = Field(default=0, ge=0, description="Epoch milliseconds")
    completed_at: int = Field(default=0, ge=0, description="0 when unset")
    project_path: Optional[str] = Field(
        default=None, description="Root directory the session ran in"
    )

    @property
    def is_assistant(self) -> bool:
        return self.role == ASSISTANT_ROLE


class SessionMetadata(BaseModel):
    """Display metadata for a session."""

    title: Optional[str] = Field(default=None)
    directory: Optional[str] = Field(default=None)

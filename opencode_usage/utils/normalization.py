"""Record normalization for OpenCode Usage.

Maps raw message records from either storage backend into ``UsageEvent``.
This is the only place optional numeric fields are defaulted; every later
stage can rely on fully populated tokens, cost and timestamps.
"""

import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError

from ..models.usage import TokenUsage, UsageEvent
from .error_handling import RecordParseError

logger = logging.getLogger(__name__)


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    """Return a nested object, treating absent or null as empty."""
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise RecordParseError(
            f"Field '{key}' should be an object, got {type(value).__name__}",
            record_id=data.get("id"),
        )
    return value


def _number(section: Dict[str, Any], key: str) -> Any:
    value = section.get(key)
    return 0 if value is None else value


def extract_project_path(data: Dict[str, Any]) -> Optional[str]:
    """Project root of a raw record. ``path.cwd`` is not a substitute."""
    return _section(data, "path").get("root") or None


def normalize_record(
    data: Any,
    session_id: Optional[str] = None,
    fallback_id: Optional[str] = None,
    fallback_created: int = 0,
) -> UsageEvent:
    """Convert a raw message record into a ``UsageEvent``.

    Args:
        data: Parsed JSON object for one message
        session_id: Owning session; takes precedence over the record's ``sessionID``
        fallback_id: Message id to use when the record carries none
            (the file stem for the JSON tree, the row id for SQLite)
        fallback_created: Creation time to use when ``time.created`` is absent

    Returns:
        Normalized event

    Raises:
        RecordParseError: If the record is not an object, has no id or
            session, or carries values of the wrong type
    """
    if not isinstance(data, dict):
        raise RecordParseError(
            f"Message record should be an object, got {type(data).__name__}"
        )

    message_id = data.get("id") or fallback_id
    owner = session_id or data.get("sessionID")
    if not message_id:
        raise RecordParseError("Message record has no id")
    if not owner:
        raise RecordParseError("Message record has no session", record_id=message_id)

    tokens_data = _section(data, "tokens")
    cache_data = _section(tokens_data, "cache")
    time_data = _section(data, "time")

    try:
        tokens = TokenUsage(
            input=_number(tokens_data, "input"),
            output=_number(tokens_data, "output"),
            reasoning=_number(tokens_data, "reasoning"),
            cache_read=_number(cache_data, "read"),
            cache_write=_number(cache_data, "write"),
        )
        return UsageEvent(
            id=str(message_id),
            session_id=str(owner),
            role=data.get("role") or "",
            model_id=data.get("modelID") or None,
            provider_id=data.get("providerID") or None,
            agent_id=data.get("agent") or None,
            tokens=tokens,
            cost=_number(data, "cost"),
            created_at=time_data.get("created") or fallback_created or 0,
            completed_at=_number(time_data, "completed"),
            project_path=extract_project_path(data),
        )
    except ValidationError as e:
        raise RecordParseError(
            f"Invalid message record {message_id}: {e.error_count()} bad field(s)",
            record_id=str(message_id),
        ) from e


def try_normalize_record(
    data: Any,
    session_id: Optional[str] = None,
    fallback_id: Optional[str] = None,
    fallback_created: int = 0,
) -> Optional[UsageEvent]:
    """Normalize a record, returning None (and logging) when it must be skipped."""
    try:
        return normalize_record(data, session_id, fallback_id, fallback_created)
    except RecordParseError as e:
        logger.debug("Skipping record in session %s: %s", session_id, e)
        return None

"""Shared fixtures: OpenCode stores built in a temporary directory."""

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest


def local_ms(year: int, month: int, day: int, hour: int = 12, minute: int = 0) -> int:
    """Epoch milliseconds of a local wall-clock time."""
    return int(datetime(year, month, day, hour, minute).timestamp() * 1000)


# 2025-01-02 18:00 local time
NOW_MS = local_ms(2025, 1, 2, 18)


def build_message(
    message_id: str,
    session_id: str,
    role: str = "assistant",
    model: Optional[str] = "gpt-x",
    input_tokens: int = 0,
    output_tokens: int = 0,
    reasoning: int = 0,
    cache_read: int = 0,
    cache_write: int = 0,
    cost: float = 0.0,
    created: int = NOW_MS,
    completed: Optional[int] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Raw message record shaped like the ones OpenCode writes."""
    record: Dict[str, Any] = {
        "id": message_id,
        "sessionID": session_id,
        "role": role,
        "time": {"created": created},
    }
    if completed is not None:
        record["time"]["completed"] = completed
    if model is not None:
        record["modelID"] = model
        record["providerID"] = "test-provider"
    if role == "assistant":
        record["tokens"] = {
            "input": input_tokens,
            "output": output_tokens,
            "reasoning": reasoning,
            "cache": {"read": cache_read, "write": cache_write},
        }
        record["cost"] = cost
    if root is not None:
        record["path"] = {"root": root, "cwd": root}
    return record


def write_json_tree(storage_dir: Path, sessions: Dict[str, Dict[str, Any]]) -> Path:
    """Lay sessions out as ``storage/message`` and ``storage/session`` files.

    ``sessions`` maps a session id to ``{"title", "directory", "messages"}``.
    """
    for session_id, session in sessions.items():
        message_dir = storage_dir / "message" / session_id
        message_dir.mkdir(parents=True, exist_ok=True)
        for message in session["messages"]:
            (message_dir / f"{message['id']}.json").write_text(json.dumps(message))

        meta_dir = storage_dir / "session" / "project-1"
        meta_dir.mkdir(parents=True, exist_ok=True)
        (meta_dir / f"{session_id}.json").write_text(
            json.dumps(
                {
                    "id": session_id,
                    "title": session.get("title"),
                    "directory": session.get("directory"),
                }
            )
        )
    return storage_dir


def write_sqlite_db(db_path: Path, sessions: Dict[str, Dict[str, Any]]) -> Path:
    """Write sessions into a database with OpenCode's ``session`` and ``message`` tables."""
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    try:
        conn.executescript(
            """
            CREATE TABLE session (
                id TEXT PRIMARY KEY, project_id TEXT, parent_id TEXT, slug TEXT,
                directory TEXT, title TEXT, version TEXT, share_url TEXT,
                time_created INTEGER, time_updated INTEGER
            );
            CREATE TABLE message (
                id TEXT PRIMARY KEY, session_id TEXT, time_created INTEGER,
                time_updated INTEGER, data TEXT
            );
            """
        )
        for session_id, session in sessions.items():
            messages: List[Dict[str, Any]] = session["messages"]
            created = min((m["time"]["created"] for m in messages), default=0)
            conn.execute(
                "INSERT INTO session (id, project_id, directory, title, time_created, "
                "time_updated) VALUES (?, ?, ?, ?, ?, ?)",
                (
                    session_id,
                    "project-1",
                    session.get("directory"),
                    session.get("title"),
                    created,
                    created,
                ),
            )
            for message in messages:
                payload = {
                    k: v for k, v in message.items() if k not in ("id", "sessionID")
                }
                conn.execute(
                    "INSERT INTO message VALUES (?, ?, ?, ?, ?)",
                    (
                        message["id"],
                        session_id,
                        message["time"]["created"],
                        message["time"]["created"],
                        json.dumps(payload),
                    ),
                )
        conn.commit()
    finally:
        conn.close()
    return db_path


@pytest.fixture
def fixed_clock() -> Callable[[], float]:
    return lambda: NOW_MS / 1000


@pytest.fixture
def sample_sessions() -> Dict[str, Dict[str, Any]]:
    """Two sessions across two days, two models and two projects."""
    return {
        "ses_alpha": {
            "title": "Refactor parser",
            "directory": "/home/dev/api",
            "messages": [
                build_message(
                    "msg_a0",
                    "ses_alpha",
                    role="user",
                    model=None,
                    created=local_ms(2025, 1, 1, 9),
                    root="/home/dev/api",
                ),
                build_message(
                    "msg_a1",
                    "ses_alpha",
                    model="claude-sonnet-4",
                    input_tokens=100,
                    output_tokens=50,
                    reasoning=10,
                    cache_read=5,
                    cache_write=2,
                    cost=0.5,
                    created=local_ms(2025, 1, 1, 10),
                    completed=local_ms(2025, 1, 1, 10, 5),
                    root="/home/dev/api",
                ),
                build_message(
                    "msg_a2",
                    "ses_alpha",
                    model="claude-sonnet-4",
                    input_tokens=200,
                    output_tokens=20,
                    cost=0.25,
                    created=local_ms(2025, 1, 2, 11),
                    completed=local_ms(2025, 1, 2, 11, 1),
                    root="/home/dev/api",
                ),
            ],
        },
        "ses_beta": {
            "title": "Write docs",
            "directory": "/home/dev/web",
            "messages": [
                build_message(
                    "msg_b1",
                    "ses_beta",
                    model="gpt-4",
                    input_tokens=40,
                    output_tokens=60,
                    cost=1.0,
                    created=local_ms(2025, 1, 2, 14),
                    completed=local_ms(2025, 1, 2, 14, 2),
                    root="/home/dev/web",
                ),
            ],
        },
    }


@pytest.fixture
def json_storage(tmp_path: Path, sample_sessions) -> Path:
    return write_json_tree(tmp_path / "opencode" / "storage", sample_sessions)


@pytest.fixture
def sqlite_db(tmp_path: Path, sample_sessions) -> Path:
    return write_sqlite_db(tmp_path / "opencode" / "opencode.db", sample_sessions)

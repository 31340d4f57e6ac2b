"""Read-only access to the OpenCode SQLite store (``opencode.db``).

Tables read:
    session(id, project_id, parent_id, slug, directory, title, version,
            share_url, time_created, time_updated)
    message(id, session_id, time_created, time_updated, data)
"""

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class SqliteStore:
    """Lazily opened, read-only handle on the OpenCode database.

    The connection is opened on first query, reused for every query in the
    run, and released by ``close()``.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            if not self.db_path.exists():
                raise FileNotFoundError(
                    f"OpenCode database not found at {self.db_path}"
                )
            uri = f"{self.db_path.resolve().as_uri()}?mode=ro"
            self._conn = sqlite3.connect(uri, uri=True)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA query_only = ON")
            logger.debug("Opened OpenCode database %s (read-only)", self.db_path)
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def get_all_sessions(self) -> List[sqlite3.Row]:
        cursor = self.connection.execute(
            "SELECT id, title, directory, time_created FROM session"
        )
        return cursor.fetchall()

    def get_session_ids(self) -> List[str]:
        cursor = self.connection.execute(
            "SELECT id FROM session ORDER BY time_created ASC, id ASC"
        )
        return [row["id"] for row in cursor.fetchall()]

    def get_messages_by_session(self, session_id: str) -> List[sqlite3.Row]:
        cursor = self.connection.execute(
            """
            SELECT id, session_id, time_created, time_updated, data
            FROM message
            WHERE session_id = ?
            ORDER BY time_created ASC, id ASC
            """,
            (session_id,),
        )
        return cursor.fetchall()

    def get_messages_by_time_range(
        self, start_time: int, end_time: int
    ) -> List[sqlite3.Row]:
        """Messages whose row ``time_created`` lies in ``[start_time, end_time]``."""
        cursor = self.connection.execute(
            """
            SELECT id, session_id, time_created, time_updated, data
            FROM message
            WHERE time_created >= ? AND time_created <= ?
            ORDER BY time_created ASC, id ASC
            """,
            (start_time, end_time),
        )
        return cursor.fetchall()

    @staticmethod
    def parse_message_row(row: sqlite3.Row) -> Optional[Dict[str, Any]]:
        """Decode a message row's JSON payload and merge in its row identity.

        Returns:
            The merged record, or None if the payload is not a JSON object
        """
        try:
            data = json.loads(row["data"])
        except (TypeError, ValueError) as e:
            logger.debug("Skipping message %s with unreadable payload: %s", row["id"], e)
            return None

        if not isinstance(data, dict):
            logger.debug("Skipping message %s: payload is not an object", row["id"])
            return None

        data["id"] = row["id"]
        data["sessionID"] = row["session_id"]
        time_info = data.get("time")
        if not isinstance(time_info, dict):
            time_info = {}
            data["time"] = time_info
        if not time_info.get("created"):
            time_info["created"] = row["time_created"]
        return data

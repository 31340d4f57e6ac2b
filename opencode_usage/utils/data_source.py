"""Data source abstraction for OpenCode Usage.

Provides one interface over the two places OpenCode keeps its history:
- SQLite store (``opencode.db``), preferred when present
- Legacy JSON storage tree (``storage/message`` + ``storage/session``)

Exactly one backend is active per run; ``get_data_source`` picks it by
probing which store exists.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ..config import PathsConfig
from ..models.usage import SessionMetadata, UsageEvent
from .error_handling import DataSourceMissingError, SessionDirectoryUnreadable
from .file_utils import FileProcessor
from .normalization import try_normalize_record
from .sqlite_store import SqliteStore

logger = logging.getLogger(__name__)

# Largest value an SQLite INTEGER column can hold.
MAX_TIMESTAMP_MS = 2**63 - 1


class DataSource(ABC):
    """Abstract base class for data sources."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Get the name of this data source."""
        pass

    @property
    def supports_time_range(self) -> bool:
        """Whether ``messages_created_between`` can avoid a full scan."""
        return False

    @abstractmethod
    def has_data(self) -> bool:
        """Check if this data source's store exists."""
        pass

    @abstractmethod
    def list_sessions(self) -> List[str]:
        """List every session identifier in the store."""
        pass

    @abstractmethod
    def list_messages(self, session_id: str) -> List[Dict[str, Any]]:
        """Load the raw message records of one session.

        Raises:
            SessionDirectoryUnreadable: If the session cannot be read at all
        """
        pass

    @abstractmethod
    def resolve_metadata(self, session_id: str) -> Optional[SessionMetadata]:
        """Look up a session's title and directory."""
        pass

    def messages_created_between(
        self, start_ms: int, end_ms: int
    ) -> List[Dict[str, Any]]:
        """Raw records created in ``[start_ms, end_ms]``.

        Backends without a time index fall back to a full scan.
        """
        messages = []
        for session_id, raw in self._iter_raw_records():
            event = try_normalize_record(raw, session_id=session_id)
            if event is not None and start_ms <= event.created_at <= end_ms:
                messages.append(raw)
        return messages

    def _iter_raw_records(self) -> Iterator[Tuple[str, Dict[str, Any]]]:
        for session_id in self.list_sessions():
            try:
                records = self.list_messages(session_id)
            except SessionDirectoryUnreadable as e:
                logger.warning("%s", e)
                continue

            for raw in records:
                yield session_id, raw

    def iter_events(
        self, start_ms: Optional[int] = None, end_ms: Optional[int] = None
    ) -> Iterator[UsageEvent]:
        """Yield normalized events, session by session.

        The range arguments are a hint: backends with a time index use them
        to narrow the read, others scan everything. Callers still apply the
        time window themselves.
        """
        for session_id, raw in self._iter_raw_records():
            event = try_normalize_record(raw, session_id=session_id)
            if event is not None:
                yield event

    def close(self) -> None:
        """Release any handle held by the data source."""

    def __enter__(self) -> "DataSource":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class JsonTreeDataSource(DataSource):
    """Data source for the legacy OpenCode JSON storage tree."""

    def __init__(self, storage_dir: str):
        self.storage_dir = Path(storage_dir).expanduser()
        self.messages_dir = self.storage_dir / "message"
        self.sessions_dir = self.storage_dir / "session"

    @property
    def name(self) -> str:
        return "opencode-json"

    def has_data(self) -> bool:
        return self.storage_dir.is_dir()

    def list_sessions(self) -> List[str]:
        return [d.name for d in FileProcessor.find_session_directories(self.messages_dir)]

    def list_messages(self, session_id: str) -> List[Dict[str, Any]]:
        return FileProcessor.load_session_messages(self.messages_dir / session_id)

    def resolve_metadata(self, session_id: str) -> Optional[SessionMetadata]:
        return FileProcessor.find_session_metadata(self.sessions_dir, session_id)


class SqliteDataSource(DataSource):
    """Data source for the OpenCode SQLite store."""

    def __init__(self, db_path: str):
        self.db_path = Path(db_path).expanduser()
        self.store = SqliteStore(self.db_path)
        self._session_map: Optional[Dict[str, SessionMetadata]] = None

    @property
    def name(self) -> str:
        return "opencode-db"

    @property
    def supports_time_range(self) -> bool:
        return True

    def has_data(self) -> bool:
        return self.db_path.is_file()

    def get_session_map(self) -> Dict[str, SessionMetadata]:
        """Title and directory of every session, loaded with one query."""
        if self._session_map is None:
            self._session_map = {
                row["id"]: SessionMetadata(
                    title=row["title"] or None,
                    directory=row["directory"] or None,
                )
                for row in self.store.get_all_sessions()
            }
        return self._session_map

    def list_sessions(self) -> List[str]:
        return self.store.get_session_ids()

    def list_messages(self, session_id: str) -> List[Dict[str, Any]]:
        messages = []
        for row in self.store.get_messages_by_session(session_id):
            data = SqliteStore.parse_message_row(row)
            if data is not None:
                messages.append(data)
        return messages

    def resolve_metadata(self, session_id: str) -> Optional[SessionMetadata]:
        return self.get_session_map().get(session_id)

    def messages_created_between(
        self, start_ms: int, end_ms: int
    ) -> List[Dict[str, Any]]:
        messages = []
        for row in self.store.get_messages_by_time_range(start_ms, end_ms):
            data = SqliteStore.parse_message_row(row)
            if data is not None:
                messages.append(data)
        return messages

    def iter_events(
        self, start_ms: Optional[int] = None, end_ms: Optional[int] = None
    ) -> Iterator[UsageEvent]:
        if start_ms is None:
            yield from super().iter_events()
            return

        if end_ms is None:
            end_ms = MAX_TIMESTAMP_MS

        sessions = self.get_session_map()
        for raw in self.messages_created_between(start_ms, end_ms):
            session_id = raw["sessionID"]
            if session_id not in sessions:
                logger.debug("Skipping message %s of unknown session %s", raw["id"], session_id)
                continue
            event = try_normalize_record(raw, session_id=session_id)
            if event is not None:
                yield event

    def close(self) -> None:
        self.store.close()


class MetadataResolver:
    """Per-run cache of session titles and directories.

    Lookups that find nothing are cached too, so each session is searched
    for at most once.
    """

    DEFAULT_TITLE = "Untitled"
    DEFAULT_PROJECT = "unknown"

    def __init__(self, data_source: DataSource):
        self.data_source = data_source
        self._cache: Dict[str, Optional[SessionMetadata]] = {}

    def resolve(self, session_id: str) -> Optional[SessionMetadata]:
        if session_id not in self._cache:
            self._cache[session_id] = self.data_source.resolve_metadata(session_id)
        return self._cache[session_id]

    def title(self, session_id: str) -> str:
        metadata = self.resolve(session_id)
        return (metadata.title if metadata else None) or self.DEFAULT_TITLE

    def directory(self, session_id: str) -> Optional[str]:
        metadata = self.resolve(session_id)
        return metadata.directory if metadata else None

    def project(self, session_id: str) -> str:
        """Project label used when grouping buckets by project."""
        return self.directory(session_id) or self.DEFAULT_PROJECT


def has_db_backend(paths: PathsConfig) -> bool:
    return Path(paths.db_path).is_file()


def has_legacy_backend(paths: PathsConfig) -> bool:
    return Path(paths.storage_dir).is_dir()


def get_data_source(paths: PathsConfig) -> DataSource:
    """Select the active backend for this run.

    Args:
        paths: Configured store locations

    Returns:
        SQLite data source if the database exists, otherwise the JSON tree

    Raises:
        DataSourceMissingError: If neither store exists
    """
    if has_db_backend(paths):
        logger.debug("Using OpenCode database at %s", paths.db_path)
        return SqliteDataSource(paths.db_path)

    if has_legacy_backend(paths):
        logger.debug("Using OpenCode JSON storage at %s", paths.storage_dir)
        return JsonTreeDataSource(paths.storage_dir)

    raise DataSourceMissingError(paths.db_path, paths.storage_dir)

"""File utility functions for the legacy OpenCode JSON storage tree.

Layout::

    storage/message/<sessionId>/<messageId>.json
    storage/session/<projectDir>/<sessionId>.json
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ..models.usage import SessionMetadata
from .error_handling import SessionDirectoryUnreadable

logger = logging.getLogger(__name__)


class FileProcessor:
    """Handles file processing and session discovery."""

    @staticmethod
    def find_session_directories(messages_dir: Path) -> List[Path]:
        """Find all session directories under the message root.

        Args:
            messages_dir: ``storage/message`` directory

        Returns:
            Session directories sorted by name
        """
        if not messages_dir.is_dir():
            return []

        try:
            session_dirs = [d for d in messages_dir.iterdir() if d.is_dir()]
        except OSError as e:
            logger.warning("Cannot list message directory %s: %s", messages_dir, e)
            return []

        session_dirs.sort(key=lambda d: d.name)
        return session_dirs

    @staticmethod
    def find_json_files(directory: Path) -> List[Path]:
        """Find all JSON files in a session directory.

        Args:
            directory: Directory to search

        Returns:
            JSON file paths sorted by name

        Raises:
            SessionDirectoryUnreadable: If the directory cannot be listed
        """
        try:
            json_files = [f for f in directory.iterdir() if f.suffix == ".json"]
        except OSError as e:
            raise SessionDirectoryUnreadable(directory.name, str(e)) from e

        json_files.sort(key=lambda f: f.name)
        return json_files

    @staticmethod
    def load_json_file(file_path: Path) -> Optional[Any]:
        """Load and parse a JSON file.

        Args:
            file_path: Path to JSON file

        Returns:
            Parsed JSON data or None if failed
        """
        try:
            with open(file_path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (
            json.JSONDecodeError,
            FileNotFoundError,
            PermissionError,
            IsADirectoryError,
            UnicodeDecodeError,
        ) as e:
            logger.debug("Skipping unreadable file %s: %s", file_path, e)
            return None

    @staticmethod
    def load_session_messages(session_dir: Path) -> List[Dict[str, Any]]:
        """Load every readable message record of one session.

        Files that fail to parse are skipped. Records that are not JSON
        objects are returned as-is and rejected later by the normalizer.

        Raises:
            SessionDirectoryUnreadable: If the directory cannot be listed
        """
        messages = []
        for json_file in FileProcessor.find_json_files(session_dir):
            data = FileProcessor.load_json_file(json_file)
            if data is None:
                continue
            if isinstance(data, dict):
                data.setdefault("id", json_file.stem)
            messages.append(data)
        return messages

    @staticmethod
    def find_session_metadata(
        sessions_dir: Path, session_id: str
    ) -> Optional[SessionMetadata]:
        """Find and load session metadata from OpenCode storage.

        Searches every project directory under ``storage/session`` for
        ``<session_id>.json``. The first readable match wins.

        Args:
            sessions_dir: ``storage/session`` directory
            session_id: Session ID to search for

        Returns:
            Session metadata or None if not found
        """
        if not sessions_dir.is_dir():
            return None

        try:
            project_dirs = sorted(d for d in sessions_dir.iterdir() if d.is_dir())
        except OSError as e:
            logger.warning("Cannot list session metadata in %s: %s", sessions_dir, e)
            return None

        for project_dir in project_dirs:
            session_file = project_dir / f"{session_id}.json"
            if not session_file.exists():
                continue

            session_data = FileProcessor.load_json_file(session_file)
            if not isinstance(session_data, dict):
                continue

            try:
                return SessionMetadata(
                    title=session_data.get("title") or None,
                    directory=session_data.get("directory") or None,
                )
            except ValidationError:
                logger.debug("Ignoring malformed metadata file %s", session_file)
                continue

        return None

"""
Durable storage for vector store namespaces.

Each namespace is written to its own JSON file so one memory's writes never
rewrite another's. Files are replaced atomically through a temp file.
"""

import hashlib
import json
import logging
import re
from pathlib import Path
from typing import Optional

from agent_orchestra.config import Settings, get_settings


logger = logging.getLogger(__name__)

FORMAT_VERSION = "1.0"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class VectorStorePersistence:
    """
    Persistent storage for vector records.

    Records are handled as plain dictionaries (``id``, ``vector``,
    ``payload``, ``metadata``, ``sequence``); the store converts them.

    Example:
        ```python
        persistence = VectorStorePersistence(Path("./memories"))
        store = InMemoryVectorStore(persistence=persistence)
        ```
    """

    def __init__(
        self,
        directory: Optional[Path] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize the persistence layer.

        Args:
            directory: Directory for namespace files. Defaults to the
                memory storage directory from settings.
            settings: Application settings.
        """
        settings = settings or get_settings()
        self.directory = Path(directory) if directory else settings.get_memory_storage_dir()
        self.directory.mkdir(parents=True, exist_ok=True)

    def _get_namespace_path(self, namespace: str) -> Path:
        """Get the file path for a namespace."""
        safe_name = _UNSAFE_CHARS.sub("_", namespace)
        digest = hashlib.sha256(namespace.encode("utf-8")).hexdigest()[:8]
        return self.directory / f"{safe_name}-{digest}.json"

    def save_namespace(self, namespace: str, records: list[dict]) -> None:
        """
        Write every record of a namespace.

        Args:
            namespace: Namespace name.
            records: Serialized records.
        """
        path = self._get_namespace_path(namespace)
        temp_path = path.with_suffix(".tmp")
        data = {
            "version": FORMAT_VERSION,
            "namespace": namespace,
            "records": records,
        }

        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, default=str)
            temp_path.replace(path)
        except OSError as e:
            logger.error(f"Failed to save namespace {namespace}: {e}")
            if temp_path.exists():
                temp_path.unlink()
            raise

        logger.debug(f"Saved {len(records)} records for namespace {namespace}")

    def load_namespace(self, namespace: str) -> list[dict]:
        """
        Load the records of a namespace.

        Returns:
            Serialized records, empty if the namespace was never saved.
        """
        path = self._get_namespace_path(namespace)
        if not path.exists():
            return []

        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        return data.get("records", [])

    def delete_namespace(self, namespace: str) -> bool:
        """
        Delete a namespace file.

        Returns:
            True if deleted, False if not found.
        """
        path = self._get_namespace_path(namespace)
        if not path.exists():
            return False
        path.unlink()
        logger.debug(f"Deleted namespace {namespace}")
        return True

    def list_namespaces(self) -> list[str]:
        """List every namespace with a file on disk."""
        namespaces = []
        for path in sorted(self.directory.glob("*.json")):
            try:
                with open(path, encoding="utf-8") as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Skipping unreadable namespace file {path}: {e}")
                continue
            namespace = data.get("namespace")
            if namespace:
                namespaces.append(namespace)
        return namespaces

"""Named key-value collections backing durable pipeline state.

The kernel registry and the execution history store each own one named
collection.  Three backends share the ``KeyValueCollection`` interface:

- ``InMemoryCollection``  -- process-local dict (tests, ``STORAGE_BACKEND=memory``)
- ``JsonFileCollection``  -- one JSON document per collection in a local directory
- ``BlobCollection``      -- one JSON blob per key in an Azure Blob Storage container

Values are JSON-serialisable objects.  Collections are synchronous: a
write either completes before the call returns or raises.
"""

from __future__ import annotations

import abc
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Any

from azure.core.exceptions import ResourceExistsError, ResourceNotFoundError

from sentinel_pipeline.core.exceptions import ContractError

if TYPE_CHECKING:
    from collections.abc import Iterator

    from azure.storage.blob import BlobServiceClient

    from sentinel_pipeline.core.config import PipelineConfig

logger = logging.getLogger("sentinel_pipeline.storage.collections")


class KeyValueCollection(abc.ABC):
    """A named, durable mapping of string keys to JSON values."""

    def __init__(self, name: str) -> None:
        if not name:
            msg = "Collection name must be non-empty"
            raise ValueError(msg)
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    @abc.abstractmethod
    def get(self, key: str) -> Any | None:
        """Return the value stored under *key*, or ``None``."""

    @abc.abstractmethod
    def put(self, key: str, value: Any) -> None:
        """Store *value* under *key*, replacing any previous value."""

    @abc.abstractmethod
    def delete(self, key: str) -> bool:
        """Remove *key*; return ``False`` if it was absent."""

    @abc.abstractmethod
    def keys(self) -> list[str]:
        """Return all keys in insertion order where the backend preserves it."""

    def items(self) -> Iterator[tuple[str, Any]]:
        for key in self.keys():
            value = self.get(key)
            if value is not None:
                yield key, value

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None


class InMemoryCollection(KeyValueCollection):
    def __init__(self, name: str) -> None:
        super().__init__(name)
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Any | None:
        raw = self._data.get(key)
        # Stored serialised so callers never share mutable state with the store.
        return None if raw is None else json.loads(raw)

    def put(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def keys(self) -> list[str]:
        return list(self._data)


class JsonFileCollection(KeyValueCollection):
    """Collection stored as ``<directory>/<name>.json``.

    Writes go to a temporary file that is atomically renamed over the
    document, so a crash mid-write leaves the previous state intact.
    """

    def __init__(self, name: str, directory: str | Path) -> None:
        super().__init__(name)
        self._path = Path(directory).expanduser() / f"{name}.json"

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            document = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            msg = f"Collection {self.name} at {self._path} is not valid JSON: {exc}"
            raise ContractError(msg, stage="storage", code="COLLECTION_CORRUPT") from exc
        if not isinstance(document, dict):
            msg = f"Collection {self.name} at {self._path} must hold a JSON object"
            raise ContractError(msg, stage="storage", code="COLLECTION_CORRUPT")
        return document

    def _save(self, document: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(document, handle, indent=2)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get(self, key: str) -> Any | None:
        return self._load().get(key)

    def put(self, key: str, value: Any) -> None:
        document = self._load()
        document[key] = value
        self._save(document)

    def delete(self, key: str) -> bool:
        document = self._load()
        if key not in document:
            return False
        del document[key]
        self._save(document)
        return True

    def keys(self) -> list[str]:
        return list(self._load())


class BlobCollection(KeyValueCollection):
    """Collection stored as ``<container>/<name>/<key>.json`` blobs."""

    def __init__(
        self,
        name: str,
        *,
        blob_service_client: BlobServiceClient,
        container: str,
    ) -> None:
        super().__init__(name)
        self._client = blob_service_client
        self._container = container
        self._prefix = f"{name}/"
        container_client = blob_service_client.get_container_client(container)
        try:
            container_client.create_container()
        except ResourceExistsError:
            pass
        else:
            logger.info("Created state container | container=%s", container)

    def _blob_name(self, key: str) -> str:
        return f"{self._prefix}{key}.json"

    def get(self, key: str) -> Any | None:
        blob_client = self._client.get_blob_client(
            container=self._container,
            blob=self._blob_name(key),
        )
        try:
            raw = blob_client.download_blob().readall()
        except ResourceNotFoundError:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            msg = f"Blob {self._container}/{self._blob_name(key)} is not valid JSON: {exc}"
            raise ContractError(msg, stage="storage", code="COLLECTION_CORRUPT") from exc

    def put(self, key: str, value: Any) -> None:
        blob_client = self._client.get_blob_client(
            container=self._container,
            blob=self._blob_name(key),
        )
        blob_client.upload_blob(json.dumps(value).encode("utf-8"), overwrite=True)
        logger.debug("Collection write | container=%s | blob=%s", self._container, self._blob_name(key))

    def delete(self, key: str) -> bool:
        blob_client = self._client.get_blob_client(
            container=self._container,
            blob=self._blob_name(key),
        )
        try:
            blob_client.delete_blob()
        except ResourceNotFoundError:
            return False
        return True

    def keys(self) -> list[str]:
        container_client = self._client.get_container_client(self._container)
        names = [b.name for b in container_client.list_blobs(name_starts_with=self._prefix)]
        return [n[len(self._prefix) :].removesuffix(".json") for n in names]


def open_collection(
    config: PipelineConfig,
    name: str,
    *,
    blob_service_client: BlobServiceClient | None = None,
) -> KeyValueCollection:
    """Open collection *name* on the backend selected by ``STORAGE_BACKEND``.

    Raises:
        ValueError: If the blob backend is selected without a client.
    """
    if config.storage_backend == "memory":
        return InMemoryCollection(name)
    if config.storage_backend == "blob":
        if blob_service_client is None:
            msg = "STORAGE_BACKEND=blob requires a BlobServiceClient"
            raise ValueError(msg)
        return BlobCollection(
            name,
            blob_service_client=blob_service_client,
            container=config.storage_container,
        )
    return JsonFileCollection(name, config.storage_dir)

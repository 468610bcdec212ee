"""Weight storage and download helpers.

Model and NNUE weights are large, so they are downloaded once and kept in a
key-value store keyed by their source URL. The pipeline only relies on the
``ModelStore`` protocol; ``InMemoryModelStore`` and ``DirectoryModelStore``
are the two implementations shipped here.
"""

import hashlib
import json
import shutil
import time
import urllib.request
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from loguru import logger

ProgressCallback = Callable[[int], None]
Fetcher = Callable[[str, ProgressCallback | None], bytes]

_CHUNK_SIZE = 1 << 16


class WeightFetchError(Exception):
    """Raised when weights cannot be downloaded."""

    pass


@dataclass(frozen=True)
class StorageInfo:
    """Capacity and usage of a weight store, in bytes."""

    quota: int | None
    usage: int
    entries: int = 0


class ModelStore(Protocol):
    """Key-value store for weight bytes, keyed by source URL."""

    def get(self, key: str) -> bytes | None: ...

    def put(self, key: str, data: bytes) -> None: ...

    def storage_info(self) -> StorageInfo: ...

    def clear(self) -> None: ...


class InMemoryModelStore:
    """Process-local store, used in tests and for throwaway sessions."""

    def __init__(self) -> None:
        self._data: dict[str, bytes] = {}

    def get(self, key: str) -> bytes | None:
        return self._data.get(key)

    def put(self, key: str, data: bytes) -> None:
        self._data[key] = bytes(data)

    def storage_info(self) -> StorageInfo:
        return StorageInfo(
            quota=None,
            usage=sum(len(v) for v in self._data.values()),
            entries=len(self._data),
        )

    def clear(self) -> None:
        self._data.clear()


class DirectoryModelStore:
    """Store weights as files in a directory.

    Each entry is ``<sha256(url)>.bin`` plus a ``.json`` sidecar recording the
    URL, size and timestamp. An entry whose sidecar URL does not match the
    requested key is treated as stale and removed.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _paths(self, key: str) -> tuple[Path, Path]:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self.root / f"{digest}.bin", self.root / f"{digest}.json"

    def get(self, key: str) -> bytes | None:
        data_path, meta_path = self._paths(key)
        if not data_path.exists() or not meta_path.exists():
            return None

        try:
            meta = json.loads(meta_path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Weight cache metadata unreadable for {key}: {e}")
            return None

        if meta.get("url") != key:
            logger.warning(f"Weight cache entry mismatch for {key}; discarding")
            self._delete(key)
            return None

        try:
            return data_path.read_bytes()
        except OSError as e:
            logger.warning(f"Weight cache read failed for {key}: {e}")
            return None

    def put(self, key: str, data: bytes) -> None:
        data_path, meta_path = self._paths(key)
        tmp_path = data_path.with_suffix(".tmp")
        tmp_path.write_bytes(data)
        tmp_path.replace(data_path)
        meta_path.write_text(
            json.dumps({"url": key, "size": len(data), "timestamp": time.time()})
        )
        logger.debug(f"Stored {len(data)} bytes for {key} in {self.root}")

    def _delete(self, key: str) -> None:
        for path in self._paths(key):
            path.unlink(missing_ok=True)

    def storage_info(self) -> StorageInfo:
        files = list(self.root.glob("*.bin"))
        return StorageInfo(
            quota=shutil.disk_usage(self.root).total,
            usage=sum(f.stat().st_size for f in files),
            entries=len(files),
        )

    def clear(self) -> None:
        for path in self.root.glob("*"):
            if path.suffix in (".bin", ".json", ".tmp"):
                path.unlink(missing_ok=True)


def fetch_bytes(
    url: str,
    on_progress: ProgressCallback | None = None,
    *,
    timeout: float = 30.0,
) -> bytes:
    """Download a URL, reporting progress in 10% steps.

    Args:
        url: Source URL.
        on_progress: Called with the completed percentage (0-100) whenever it
            advances by at least 10 points, and once on completion. Only called
            when the server sends a Content-Length.
        timeout: Socket timeout in seconds.

    Raises:
        WeightFetchError: On any network or HTTP failure.
    """
    try:
        with urllib.request.urlopen(url, timeout=timeout) as response:
            total = int(response.headers.get("Content-Length") or 0)
            chunks: list[bytes] = []
            received = 0
            last_reported = 0
            while True:
                chunk = response.read(_CHUNK_SIZE)
                if not chunk:
                    break
                chunks.append(chunk)
                received += len(chunk)
                if on_progress is not None and total:
                    progress = received * 100 // total
                    if progress >= last_reported + 10 or (progress == 100 and last_reported < 100):
                        on_progress(progress)
                        last_reported = progress
    except OSError as e:
        raise WeightFetchError(f"Failed to fetch {url}: {e}") from e

    logger.debug(f"Fetched {received} bytes from {url}")
    return b"".join(chunks)


def load_weights(
    url: str,
    store: ModelStore,
    fetch: Fetcher = fetch_bytes,
    *,
    on_download_start: Callable[[], None] | None = None,
    on_progress: ProgressCallback | None = None,
) -> bytes:
    """Return weight bytes for ``url``, downloading and storing them on a cache miss."""
    cached = store.get(url)
    if cached is not None:
        logger.debug(f"Weights for {url} found in store")
        return cached

    if on_download_start is not None:
        on_download_start()

    logger.info(f"Downloading weights from {url}")
    data = fetch(url, on_progress)
    store.put(url, data)
    return data

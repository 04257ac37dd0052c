"""Content-addressed binary cache for built templates.

Cache Key:
SHA-256 over the generated source followed by the bytes of every imported
file, in import order, hex encoded. Identical generated code with identical
import contents always maps to the same key; changing any byte of either
changes it.

Layout:
    ```
    <cache_root>.parent/
    ├── kiln_runtime.py          # runtime support shared by cached binaries
    └── <cache_root>/
        └── <key>                # one executable per live entry
    ```

Eviction:
``max_entries`` bounds how many binaries stay in the cache directory. The
default of 1 keeps the classic single-slot behaviour: storing a new binary
evicts the previous one. Eviction removes the least recently used entries
(by modification time, refreshed on every hit) and never deletes the
cache directory itself, so other processes reading a live entry are not
disturbed more than necessary.

Thread-Safety:
Writes for one cache directory are serialised by a per-directory lock.
Binaries are moved into place with an atomic rename, so a concurrent
reader sees either no entry or a complete one, never a partial binary.

"""

from __future__ import annotations

import hashlib
import logging
import os
import shutil
import threading
from collections.abc import Iterable
from pathlib import Path

logger = logging.getLogger(__name__)

_LOCKS: dict[Path, threading.Lock] = {}
_LOCKS_GUARD = threading.Lock()


def cache_key(source: str, imports: Iterable[str | Path] = ()) -> str:
    """Derive the cache key for generated source plus imported files.

    Args:
        source: Generated program source.
        imports: Imported file paths, in import order.

    Returns:
        64-character lowercase hex digest (filesystem safe).
    """
    digest = hashlib.sha256(source.encode("utf-8"))
    for path in imports:
        digest.update(Path(path).read_bytes())
    return digest.hexdigest()


def _lock_for(root: Path) -> threading.Lock:
    key = root.resolve()
    with _LOCKS_GUARD:
        lock = _LOCKS.get(key)
        if lock is None:
            lock = _LOCKS[key] = threading.Lock()
        return lock


class BinaryCache:
    """Directory of built binaries keyed by cache key.

    Attributes:
        root: Cache directory (entries live directly inside it)
        max_entries: Live entries kept after a store (>= 1)

    Example:
            >>> cache = BinaryCache(Path(".kiln-cache/templates"))
            >>> key = cache_key(program.source, program.imports)
            >>> binary = cache.get(key)
            >>> if binary is None:
            ...     binary = cache.store(key, build_somewhere())
    """

    __slots__ = ("max_entries", "root")

    def __init__(self, root: str | Path, max_entries: int = 1):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.root = Path(root)
        self.max_entries = max_entries

    @property
    def runtime_dir(self) -> Path:
        """Where runtime support for cached binaries is kept."""
        return self.root.parent

    @property
    def lock(self) -> threading.Lock:
        return _lock_for(self.root)

    def path_for(self, key: str) -> Path:
        return self.root / key

    def get(self, key: str) -> Path | None:
        """Return the binary stored under ``key``, or None on a miss."""
        path = self.path_for(key)
        if not path.is_file():
            logger.debug("Cache miss for %s in %s", key, self.root)
            return None
        try:
            os.utime(path)
        except OSError:
            # Evicted by another process between the check and the touch
            return None
        logger.debug("Cache hit: %s", path)
        return path

    def store(self, key: str, binary: str | Path) -> Path:
        """Move ``binary`` into the cache under ``key`` and evict old entries.

        The move is an atomic rename when ``binary`` lives on the same
        filesystem as the cache; otherwise it is copied next to the target
        first and then renamed.
        """
        self.root.mkdir(parents=True, exist_ok=True)
        target = self.path_for(key)
        partial = self.root / f".{key}.partial"

        try:
            os.replace(binary, target)
        except OSError:
            # Different filesystem: stage next to the target, then rename
            shutil.copy2(binary, partial)
            os.replace(partial, target)

        logger.info("Cached %s", target)
        self.evict(keep=key)
        return target

    def entries(self) -> list[Path]:
        """Live entries, most recently used first."""
        if not self.root.is_dir():
            return []
        entries = [p for p in self.root.iterdir() if p.is_file() and not p.name.startswith(".")]
        return sorted(entries, key=_mtime, reverse=True)

    def evict(self, keep: str | None = None) -> list[Path]:
        """Remove least recently used entries beyond ``max_entries``.

        The entry named ``keep`` is never removed.
        """
        entries = self.entries()
        if keep is not None:
            entries.sort(key=lambda p: p.name != keep)

        removed: list[Path] = []
        for path in entries[self.max_entries :]:
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            logger.debug("Evicted %s", path)
            removed.append(path)
        return removed

    def clear(self) -> None:
        """Remove every entry (the directory itself stays)."""
        for path in self.entries():
            path.unlink(missing_ok=True)

    def stats(self) -> dict[str, int]:
        """Entry count and total size, for diagnostics."""
        entries = self.entries()
        return {
            "file_count": len(entries),
            "total_bytes": sum(_size(p) for p in entries),
        }


def _mtime(path: Path) -> float:
    try:
        return path.stat().st_mtime
    except FileNotFoundError:
        return 0.0


def _size(path: Path) -> int:
    try:
        return path.stat().st_size
    except FileNotFoundError:
        return 0

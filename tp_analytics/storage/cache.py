"""
Disk cache for raw activity files.
Stores one <workout_id>.fit file per workout and evicts least recently
accessed files once the total size exceeds the byte budget.
"""
import logging
import os
import tempfile
import threading
import time
from pathlib import Path
from typing import Dict, Optional

from ..config import get_config
from ..models.types import CacheEntry, CacheStats, ClearResult

logger = logging.getLogger(__name__)

CACHE_SUFFIX = ".fit"


class ActivityFileCache:
    """
    Byte-budgeted LRU cache of activity files keyed by workout id.

    The index is built lazily on first use by scanning the cache directory,
    so a restarted process keeps previously cached files and their access
    order (file mtime is refreshed on every hit).
    """

    def __init__(self, cache_dir: Optional[str] = None, max_bytes: Optional[int] = None):
        settings = get_config().cache
        self.cache_dir = Path(cache_dir or settings.cache_dir).expanduser()
        self.max_bytes = int(max_bytes if max_bytes is not None else settings.max_bytes)
        if self.max_bytes <= 0:
            raise ValueError("max_bytes must be greater than 0")

        self._entries: Dict[int, CacheEntry] = {}
        self._total_bytes = 0
        self._sequence = 0
        self._initialized = False
        self._lock = threading.RLock()

    def _path_for(self, workout_id: int) -> Path:
        return self.cache_dir / f"{int(workout_id)}{CACHE_SUFFIX}"

    def _next_sequence(self) -> int:
        self._sequence += 1
        return self._sequence

    def _ensure_initialized(self):
        with self._lock:
            if self._initialized:
                return
            self._initialized = True
            if not self.cache_dir.is_dir():
                return

            found = []
            for path in self.cache_dir.glob(f"*{CACHE_SUFFIX}"):
                try:
                    workout_id = int(path.stem)
                except ValueError:
                    continue
                try:
                    st = path.stat()
                except OSError:
                    continue
                found.append((st.st_mtime, workout_id, path, st.st_size))

            # Sequence follows mtime so ties at startup keep a stable order
            for mtime, workout_id, path, size in sorted(found):
                self._entries[workout_id] = CacheEntry(
                    path=str(path),
                    size_bytes=size,
                    last_access=mtime,
                    sequence=self._next_sequence(),
                )
                self._total_bytes += size

            if self._entries:
                logger.info(
                    "Loaded %d cached activity files (%d bytes) from %s",
                    len(self._entries), self._total_bytes, self.cache_dir,
                )

    def _drop_entry(self, workout_id: int) -> Optional[CacheEntry]:
        entry = self._entries.pop(workout_id, None)
        if entry is not None:
            self._total_bytes -= entry.size_bytes
        return entry

    def get(self, workout_id: int) -> Optional[bytes]:
        """Return cached bytes for the workout, or None on a miss."""
        self._ensure_initialized()
        workout_id = int(workout_id)
        with self._lock:
            entry = self._entries.get(workout_id)
        if entry is None:
            logger.debug("Cache miss for workout %s", workout_id)
            return None

        try:
            data = Path(entry.path).read_bytes()
        except OSError:
            # File vanished underneath the index
            with self._lock:
                if self._entries.get(workout_id) is entry:
                    self._drop_entry(workout_id)
            logger.debug("Cached file for workout %s is gone, dropping entry", workout_id)
            return None

        now = time.time()
        with self._lock:
            current = self._entries.get(workout_id)
            if current is not None:
                current.last_access = now
                current.sequence = self._next_sequence()
        try:
            os.utime(entry.path, (now, now))
        except OSError:
            logger.debug("Could not refresh mtime for %s", entry.path)

        logger.debug("Cache hit for workout %s (%d bytes)", workout_id, len(data))
        return data

    def set(self, workout_id: int, data: bytes):
        """Store bytes for the workout, then evict down to the byte budget."""
        self._ensure_initialized()
        workout_id = int(workout_id)
        path = self._path_for(workout_id)
        self.cache_dir.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(dir=str(self.cache_dir), prefix=f".{workout_id}-", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
        except BaseException:
            self._discard_temp(tmp_name)
            raise

        # Rename, index update and eviction share one lock hold
        with self._lock:
            try:
                os.replace(tmp_name, path)
            except BaseException:
                self._discard_temp(tmp_name)
                raise
            self._drop_entry(workout_id)
            self._entries[workout_id] = CacheEntry(
                path=str(path),
                size_bytes=len(data),
                last_access=time.time(),
                sequence=self._next_sequence(),
            )
            self._total_bytes += len(data)
            logger.debug("Cached workout %s (%d bytes)", workout_id, len(data))
            self._evict()

    @staticmethod
    def _discard_temp(tmp_name: str):
        try:
            os.unlink(tmp_name)
        except OSError:
            pass

    def _evict(self):
        if self._total_bytes <= self.max_bytes:
            return
        order = sorted(self._entries.items(), key=lambda item: (item[1].last_access, item[1].sequence))
        for workout_id, entry in order:
            if self._total_bytes <= self.max_bytes:
                break
            self._drop_entry(workout_id)
            try:
                os.unlink(entry.path)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("Failed to remove evicted file %s (%s)", entry.path, e)
            logger.debug("Evicted workout %s (%d bytes)", workout_id, entry.size_bytes)

    def delete(self, workout_id: int) -> bool:
        """Remove one workout's file. Returns True if an entry existed."""
        self._ensure_initialized()
        with self._lock:
            entry = self._drop_entry(int(workout_id))
            if entry is None:
                return False
            try:
                os.unlink(entry.path)
            except FileNotFoundError:
                pass
            return True

    def clear(self) -> ClearResult:
        """Remove every cached file."""
        self._ensure_initialized()
        with self._lock:
            count = len(self._entries)
            total = self._total_bytes
            for entry in self._entries.values():
                try:
                    os.unlink(entry.path)
                except FileNotFoundError:
                    pass
            self._entries.clear()
            self._total_bytes = 0
        logger.info("Cleared %d cached activity files (%d bytes)", count, total)
        return ClearResult(count=count, bytes=total)

    def stats(self) -> CacheStats:
        self._ensure_initialized()
        with self._lock:
            return CacheStats(
                entry_count=len(self._entries),
                total_bytes=self._total_bytes,
                max_bytes=self.max_bytes,
                location=str(self.cache_dir),
            )

    def __len__(self) -> int:
        self._ensure_initialized()
        with self._lock:
            return len(self._entries)

    def __contains__(self, workout_id) -> bool:
        self._ensure_initialized()
        with self._lock:
            return int(workout_id) in self._entries

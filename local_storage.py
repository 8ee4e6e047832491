import json
import logging
import os
import tempfile
import threading

from exceptions import StorageQuotaExceeded, StorageWriteError

logger = logging.getLogger(__name__)


def _entry_size(key, value):
    return len(key.encode('utf-8')) + len(value.encode('utf-8'))


class LocalStorage:
    """
    Synchronous string key/value storage.

    Values are stored verbatim; callers serialise to JSON themselves.
    When ``quota_bytes`` is set, a write that would push the total size of
    keys and values past it is rejected with StorageQuotaExceeded and the
    previous value is kept.
    """

    def __init__(self, quota_bytes=None):
        self.quota_bytes = quota_bytes

    # Backends implement these three.
    def _load(self):
        raise NotImplementedError

    def _store(self, key, value):
        raise NotImplementedError

    def _delete(self, key):
        raise NotImplementedError

    def get_item(self, key):
        return self._load().get(key)

    def set_item(self, key, value):
        if not isinstance(value, str):
            raise TypeError('LocalStorage values must be strings')
        if self.quota_bytes is not None:
            items = self._load()
            used = sum(_entry_size(k, v) for k, v in items.items() if k != key)
            used += _entry_size(key, value)
            if used > self.quota_bytes:
                raise StorageQuotaExceeded(key, used, self.quota_bytes)
        self._store(key, value)

    def remove_item(self, key):
        self._delete(key)

    def keys(self):
        return sorted(self._load())

    def __contains__(self, key):
        return self.get_item(key) is not None


class MemoryStorage(LocalStorage):
    """In-process storage; contents vanish with the process."""

    def __init__(self, initial=None, quota_bytes=None):
        super().__init__(quota_bytes=quota_bytes)
        self._items = dict(initial or {})

    def _load(self):
        return dict(self._items)

    def _store(self, key, value):
        self._items[key] = value

    def _delete(self, key):
        self._items.pop(key, None)


# One lock per file, shared by every JsonFileStorage pointing at it.
_file_locks = {}
_file_locks_guard = threading.Lock()


def _lock_for(path):
    path = os.path.abspath(path)
    with _file_locks_guard:
        if path not in _file_locks:
            _file_locks[path] = threading.RLock()
        return _file_locks[path]


class JsonFileStorage(LocalStorage):
    """
    All keys kept in one JSON file, re-read on every access so that
    separate processes see each other's last write.

    Writes go to a temp file that replaces the original, so readers never
    see a half-written file. Read-modify-write cycles in this process are
    serialised per file. A file that cannot be parsed is never overwritten.
    """

    def __init__(self, path, quota_bytes=None):
        super().__init__(quota_bytes=quota_bytes)
        self.path = path
        self._lock = _lock_for(path)

    def _read(self):
        """Parsed file contents; None when the file is not a JSON object."""
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError:
            logger.warning("%s corrupted. Starting with empty storage.", self.path)
            return None
        if not isinstance(data, dict):
            logger.warning("%s does not hold a key/value object. Ignoring it.", self.path)
            return None
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _load(self):
        return self._read() or {}

    def _load_for_write(self, key):
        items = self._read()
        if items is None:
            raise StorageWriteError(key, f"{self.path} is unreadable; refusing to overwrite it")
        return items

    def _save(self, items):
        directory = os.path.dirname(os.path.abspath(self.path))
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix='.storage-', suffix='.tmp')
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(items, f, indent=4)
            os.replace(tmp_path, self.path)
        except OSError as e:
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise StorageWriteError(self.path, e) from e

    def set_item(self, key, value):
        with self._lock:
            super().set_item(key, value)

    def remove_item(self, key):
        with self._lock:
            super().remove_item(key)

    def _store(self, key, value):
        items = self._load_for_write(key)
        items[key] = value
        self._save(items)

    def _delete(self, key):
        items = self._load_for_write(key)
        if key in items:
            del items[key]
            self._save(items)


def get_storage(settings):
    """Build the storage backend named by ``settings.storage_backend``."""
    backend = settings.storage_backend
    if backend == 'memory':
        return MemoryStorage(quota_bytes=settings.quota_bytes)
    if backend == 'json':
        return JsonFileStorage(settings.data_file, quota_bytes=settings.quota_bytes)
    if backend == 'sqlite':
        from database import SqliteStorage
        return SqliteStorage(settings.db_name, quota_bytes=settings.quota_bytes)
    raise ValueError(f"Unknown storage backend: {backend!r}")

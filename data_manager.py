import json
import logging

from defaults import collection_fields, defaults
from exceptions import StorageWriteError

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = 'app'


def is_absent(value):
    """
    True for values treated as "not stored": None, False, zero and "".

    Empty lists and objects count as stored, so a collection the user has
    emptied stays empty.
    """
    if value is None or value is False or value == '':
        return True
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value == 0


def reconcile(role, parsed, now=None, session=None):
    """
    Merge a stored document over the role defaults.

    Every stored top-level field overwrites its default (unknown fields pass
    through). Declared collection fields that are absent in storage fall back
    to the default collection. Entries inside a collection are taken as
    stored, never repaired.
    """
    base = defaults(role, now=now, session=session)
    merged = {**base, **parsed}
    for field in collection_fields(role):
        if is_absent(parsed.get(field)):
            merged[field] = base[field]
    return merged


class DocumentStore:
    """One JSON document per (role, username), kept in a LocalStorage."""

    def __init__(self, storage, prefix=DEFAULT_PREFIX):
        self.storage = storage
        self.prefix = prefix

    def storage_key(self, role, username):
        return f"{self.prefix}:{role}:{username}"

    def read(self, role, username, now=None, session=None):
        """
        Load the document for a role and user.

        Missing or corrupted data yields fresh defaults; the corrupted value
        is left in storage until the next write replaces it.
        """
        key = self.storage_key(role, username)
        raw = self.storage.get_item(key)
        if not raw:
            return defaults(role, now=now, session=session)
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Failed to load %s data from %s: %s", role, key, e)
            return defaults(role, now=now, session=session)
        if not isinstance(parsed, dict):
            logger.warning("Failed to load %s data from %s: expected an object, got %s",
                           role, key, type(parsed).__name__)
            return defaults(role, now=now, session=session)
        return reconcile(role, parsed, now=now, session=session)

    def write(self, role, username, document):
        """Overwrite the stored document. Returns False when storage refused the write."""
        key = self.storage_key(role, username)
        try:
            self.storage.set_item(key, json.dumps(document))
        except StorageWriteError as e:
            logger.warning("Changes to %s may not be saved: %s", key, e)
            return False
        return True

class HMSError(Exception):
    """Base class for every error raised by the document store and role operations."""


class UnknownRole(HMSError, ValueError):
    def __init__(self, role):
        self.role = role
        super().__init__(f"Unknown role: {role!r}")


class StorageError(HMSError):
    pass


class StorageWriteError(StorageError):
    def __init__(self, key, reason):
        self.key = key
        self.reason = reason
        super().__init__(f"Could not write {key!r}: {reason}")


class StorageQuotaExceeded(StorageWriteError):
    def __init__(self, key, used, quota):
        self.used = used
        self.quota = quota
        super().__init__(key, f"quota of {quota} bytes exceeded ({used} bytes needed)")


class UsernameTaken(HMSError):
    def __init__(self, username):
        self.username = username
        super().__init__("This username is already taken.")


class InvalidCredentials(HMSError):
    # Same message for unknown user and wrong password.
    def __init__(self):
        super().__init__("Invalid username or password")


class EntityNotFound(HMSError, LookupError):
    def __init__(self, collection, entity_id):
        self.collection = collection
        self.entity_id = entity_id
        super().__init__(f"No entry with id {entity_id!r} in {collection}")


class InvalidTransition(HMSError):
    def __init__(self, kind, current, target):
        self.kind = kind
        self.current = current
        self.target = target
        super().__init__(f"Cannot move {kind} from {current!r} to {target!r}")


class ValidationError(HMSError):
    def __init__(self, message, errors=None):
        self.errors = errors or {}
        super().__init__(message)

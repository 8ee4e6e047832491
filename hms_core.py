# hms_core.py
import logging
import uuid

from defaults import parse_iso
from exceptions import EntityNotFound, ValidationError

logger = logging.getLogger(__name__)

SAVE_FAILED_NOTICE = 'Changes may not be saved'

IN_STOCK = 'in stock'
LOW_STOCK = 'low stock'
OUT_OF_STOCK = 'out of stock'


def generate_id(prefix):
    """Generate a unique id such as ``apt-3f9c0a1b2d4e``."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def timestamp_key(value):
    """Sort key for stored timestamps; unparseable values sort last."""
    dt = parse_iso(value)
    return (dt is None, dt.timestamp() if dt else 0)


def on_day(value, day):
    dt = parse_iso(value)
    return dt is not None and dt.date() == day


def parse_int(value, default=0):
    if value is None or value == '':
        return default
    try:
        return int(str(value).strip())
    except ValueError:
        raise ValidationError(f"Expected a whole number, got {value!r}") from None


def parse_float(value, default=0.0):
    if value is None or value == '':
        return default
    try:
        return float(str(value).strip())
    except ValueError:
        raise ValidationError(f"Expected a number, got {value!r}") from None


def classify_stock(stock, threshold):
    stock = stock or 0
    if stock <= 0:
        return OUT_OF_STOCK
    if stock <= (threshold or 0):
        return LOW_STOCK
    return IN_STOCK


class AppState:
    """
    The in-memory document of one signed-in user, plus the store it came from.

    Owned by the page controller and handed to the role controllers. When a
    write is refused the in-memory document stays authoritative and a notice
    is queued for the presentation layer.
    """

    def __init__(self, store, session, role=None, now=None):
        self.store = store
        self.session = session
        self.role = role or session['role']
        self.username = session['username']
        self.save_failed = False
        self.notices = []
        self.document = store.read(self.role, self.username, now=now, session=session)

    def reload(self, now=None):
        """Reload data from storage."""
        self.document = self.store.read(self.role, self.username, now=now, session=self.session)
        return self.document

    def save(self):
        saved = self.store.write(self.role, self.username, self.document)
        self.save_failed = not saved
        if not saved and SAVE_FAILED_NOTICE not in self.notices:
            self.notices.append(SAVE_FAILED_NOTICE)
        return saved


class RoleController:
    """Shared create/update/delete plumbing for the per-role controllers."""

    role = None

    def __init__(self, state):
        if self.role and state.role != self.role:
            raise ValueError(f"{type(self).__name__} needs a {self.role} document, got {state.role}")
        self.state = state

    @property
    def data(self):
        return self.state.document

    def items(self, collection):
        return self.data[collection]

    def find(self, collection, entity_id):
        for entity in self.items(collection):
            if entity.get('id') == entity_id:
                return entity
        logger.warning("No %s entry with id %r in %s document of %s",
                       collection, entity_id, self.state.role, self.state.username)
        raise EntityNotFound(collection, entity_id)

    def create(self, collection, prefix, fields, prepend=False):
        entity = {**fields, 'id': generate_id(prefix)}
        if prepend:
            self.items(collection).insert(0, entity)
        else:
            self.items(collection).append(entity)
        self.state.save()
        return entity

    def update(self, collection, entity_id, fields):
        entity = self.find(collection, entity_id)
        entity.update(fields)
        self.state.save()
        return entity

    def delete(self, collection, entity_id):
        entity = self.find(collection, entity_id)
        self.data[collection] = [e for e in self.items(collection) if e.get('id') != entity_id]
        self.state.save()
        return entity

    def transition(self, collection, entity_id, flow, target):
        entity = self.find(collection, entity_id)
        flow.apply(entity, target)
        self.state.save()
        return entity

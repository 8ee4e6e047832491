from datetime import datetime, timezone

import pytest

from data_manager import DocumentStore
from hms_core import AppState
from local_storage import MemoryStorage
from session_directory import SessionDirectory

NOW = datetime(2024, 5, 14, 10, 30, tzinfo=timezone.utc)


def make_session(role, username=None):
    return {
        'username': username or f"{role}1",
        'role': role,
        'firstName': 'Test',
        'lastName': role.title(),
        'email': f"{role}@hospital.com",
        'patientId': 'PAT-ABC123' if role == 'patient' else None,
        'createdAt': '2024-05-01T08:00:00.000Z',
    }


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def store(storage):
    return DocumentStore(storage)


@pytest.fixture
def directory(storage):
    return SessionDirectory(storage)


@pytest.fixture
def make_state(store, now):
    def _make(role, username=None):
        return AppState(store, make_session(role, username), now=now)
    return _make


@pytest.fixture
def admin_state(make_state):
    return make_state('admin')


@pytest.fixture
def doctor_state(make_state):
    return make_state('doctor')


@pytest.fixture
def patient_state(make_state):
    return make_state('patient')


@pytest.fixture
def pharmacist_state(make_state):
    return make_state('pharmacist')


@pytest.fixture
def staff_state(make_state):
    return make_state('staff')

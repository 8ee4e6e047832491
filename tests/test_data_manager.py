import json
import logging

import pytest

from data_manager import DocumentStore, is_absent, reconcile
from defaults import defaults
from local_storage import MemoryStorage


@pytest.mark.parametrize('value, expected', [
    (None, True),
    (False, True),
    (0, True),
    (0.0, True),
    ('', True),
    ([], False),
    ({}, False),
    ([{'id': 'x'}], False),
    ('text', False),
    (True, False),
    (3, False),
])
def test_is_absent(value, expected):
    assert is_absent(value) is expected


def test_storage_key(store):
    assert store.storage_key('doctor', 'drsmith') == 'app:doctor:drsmith'
    assert DocumentStore(MemoryStorage(), prefix='hms').storage_key('staff', 'amy') == 'hms:staff:amy'


def test_missing_document_reads_as_defaults(store, now):
    assert store.read('pharmacist', 'ph1', now=now) == defaults('pharmacist', now=now)


def test_write_then_read_round_trip(store, now):
    document = defaults('staff', now=now)
    document['visits'].pop()
    document['billing'][0]['status'] = 'paid'

    assert store.write('staff', 'amy', document) is True
    assert store.read('staff', 'amy', now=now) == document


def test_documents_are_isolated_per_user(store, now):
    document = defaults('doctor', now=now)
    document['appointments'] = [{'id': 'apt-mine', 'status': 'pending'}]
    store.write('doctor', 'alice', document)

    assert store.read('doctor', 'bob', now=now) == defaults('doctor', now=now)


def test_missing_collection_is_healed_from_defaults(storage, store, now):
    kept = [{'id': 'apt-x', 'status': 'pending', 'datetime': '2024-05-14T09:00:00.000Z'}]
    storage.set_item('app:doctor:drsmith', json.dumps({'appointments': kept}))

    document = store.read('doctor', 'drsmith', now=now)
    assert document['appointments'] == kept
    assert document['prescriptions'] == defaults('doctor', now=now)['prescriptions']
    assert document['profile'] == defaults('doctor', now=now)['profile']


def test_null_collection_is_healed(storage, store, now):
    storage.set_item('app:pharmacist:ph1', json.dumps({'prescriptions': None, 'inventory': []}))

    document = store.read('pharmacist', 'ph1', now=now)
    assert document['prescriptions'] == defaults('pharmacist', now=now)['prescriptions']
    assert document['inventory'] == []


def test_emptied_collection_stays_empty(store, now):
    document = defaults('doctor', now=now)
    document['appointments'] = []
    store.write('doctor', 'drsmith', document)

    assert store.read('doctor', 'drsmith', now=now)['appointments'] == []


def test_entries_are_not_repaired(now):
    parsed = {'inventory': [{'id': 'med-9'}]}
    assert reconcile('pharmacist', parsed, now=now)['inventory'] == [{'id': 'med-9'}]


def test_unknown_fields_pass_through(now):
    merged = reconcile('staff', {'shiftNotes': 'short-staffed'}, now=now)
    assert merged['shiftNotes'] == 'short-staffed'
    assert merged['visits'] == defaults('staff', now=now)['visits']


def test_stored_non_collection_field_overwrites_default(now):
    merged = reconcile('doctor', {'profile': {'specialization': 'Oncology'}}, now=now)
    assert merged['profile'] == {'specialization': 'Oncology'}


def test_corrupt_document_falls_back_to_defaults(storage, store, now, caplog):
    storage.set_item('app:patient:sonia', '{not json')

    with caplog.at_level(logging.WARNING):
        document = store.read('patient', 'sonia', now=now)

    assert document == defaults('patient', now=now)
    assert 'app:patient:sonia' in caplog.text
    # left in place until the next write
    assert storage.get_item('app:patient:sonia') == '{not json'


def test_non_object_document_falls_back_to_defaults(storage, store, now, caplog):
    storage.set_item('app:staff:amy', json.dumps([1, 2, 3]))

    with caplog.at_level(logging.WARNING):
        assert store.read('staff', 'amy', now=now) == defaults('staff', now=now)
    assert 'expected an object' in caplog.text


def test_refused_write_returns_false_and_keeps_previous_value(now, caplog):
    storage = MemoryStorage({'app:doctor:drsmith': '{}'}, quota_bytes=200)
    store = DocumentStore(storage)

    with caplog.at_level(logging.WARNING):
        assert store.write('doctor', 'drsmith', defaults('doctor', now=now)) is False

    assert storage.get_item('app:doctor:drsmith') == '{}'
    assert 'may not be saved' in caplog.text


def test_reading_an_empty_store_twice_gives_independent_documents(store, now):
    first = store.read('patient', 'sonia', now=now)
    second = store.read('patient', 'sonia', now=now)
    assert first == second

    first['appointments'].clear()
    first['billing']['invoices'][0]['status'] = 'paid'
    first['benefits']['plan'] = 'Basic'

    assert len(second['appointments']) == 2
    assert second['billing']['invoices'][0]['status'] == 'due'
    assert second['benefits']['plan'] == 'Preferred Care 80'
    assert store.read('patient', 'sonia', now=now) == second

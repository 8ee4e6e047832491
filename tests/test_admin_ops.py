import copy

import pytest

from admin_ops import AdminController, slugify
from exceptions import EntityNotFound, InvalidTransition, ValidationError
from hms_core import IN_STOCK, LOW_STOCK, OUT_OF_STOCK


@pytest.fixture
def admin(admin_state):
    return AdminController(admin_state)


def stored(store, now):
    return store.read('admin', 'admin1', now=now)


def test_confirm_pending_appointment_is_persisted(admin, store, now):
    admin.data['appointments'][0]['status'] = 'pending'

    appointment = admin.confirm_appointment('apt-1')

    assert appointment['status'] == 'confirmed'
    assert stored(store, now)['appointments'][0]['status'] == 'confirmed'


def test_confirm_unknown_appointment(admin, storage):
    before = copy.deepcopy(admin.data)
    with pytest.raises(EntityNotFound):
        admin.confirm_appointment('apt-999')
    assert admin.data == before
    assert 'app:admin:admin1' not in storage


def test_cancelled_appointment_cannot_be_confirmed(admin):
    admin.cancel_appointment('apt-1')
    with pytest.raises(InvalidTransition):
        admin.confirm_appointment('apt-1')
    assert admin.find('appointments', 'apt-1')['status'] == 'cancelled'


def test_add_update_delete_doctor(admin, store, now):
    doctor = admin.add_doctor({'firstName': 'Kiran', 'lastName': 'Rao', 'experience': '7',
                               'departmentId': 'neurology', 'password': 'ignored'})
    assert doctor['id'].startswith('doc-')
    assert doctor['experience'] == 7
    assert 'password' not in doctor

    admin.update_doctor(doctor['id'], {'specialization': 'Neurosurgeon'})
    assert admin.doctor_name(doctor['id']) == 'Dr. Kiran Rao'
    assert stored(store, now)['doctors'][-1]['specialization'] == 'Neurosurgeon'


def test_add_doctor_needs_a_name(admin):
    with pytest.raises(ValidationError):
        admin.add_doctor({'firstName': 'Kiran'})


def test_delete_doctor_drops_their_appointments(admin):
    admin.delete_doctor('doc-1')
    assert [d['id'] for d in admin.data['doctors']] == ['doc-2']
    assert admin.data['appointments'] == []
    assert admin.doctor_name('doc-1') == '—'


def test_delete_patient_drops_their_appointments(admin):
    admin.delete_patient('pat-1')
    assert admin.data['patients'] == []
    assert admin.data['appointments'] == []


def test_add_department_slugs(admin):
    assert admin.add_department('Emergency Care', 'ER')['id'] == 'emergency-care'
    assert admin.add_department('Cardiology')['id'].startswith('cardiology-')
    assert admin.add_department('!!!')['id'].startswith('dept-')
    with pytest.raises(ValidationError):
        admin.add_department('   ')


def test_slugify():
    assert slugify('  Ear, Nose & Throat ') == 'ear-nose-throat'
    assert len(slugify('x' * 50)) == 32


def test_update_department(admin):
    department = admin.update_department('neurology', description='Brain care')
    assert department == {'id': 'neurology', 'name': 'Neurology', 'description': 'Brain care'}


def test_delete_department_detaches_people_and_drops_appointments(admin, store, now):
    admin.delete_department('cardiology')

    doc = admin.find('doctors', 'doc-1')
    assert doc['departmentId'] == ''
    assert admin.find('staff', 'staff-1')['departmentId'] == ''
    assert admin.find('doctors', 'doc-2')['departmentId'] == 'neurology'
    assert admin.data['appointments'] == []
    assert 'cardiology' not in [d['id'] for d in stored(store, now)['departments']]


def test_department_distribution_is_sorted(admin):
    admin.add_doctor({'firstName': 'Kiran', 'lastName': 'Rao', 'departmentId': 'neurology'})
    distribution = admin.department_distribution()
    assert distribution[0] == {'id': 'neurology', 'name': 'Neurology', 'count': 2}
    assert [d['count'] for d in distribution] == [2, 1, 0, 0]


def test_staff_crud(admin):
    member = admin.add_staff({'firstName': 'Leela', 'role': 'receptionist'})
    assert member['departmentId'] == ''
    admin.update_staff(member['id'], {'departmentId': 'pediatrics'})
    assert admin.filter_staff(role='receptionist')[0]['departmentId'] == 'pediatrics'
    admin.delete_staff(member['id'])
    assert [s['id'] for s in admin.data['staff']] == ['staff-1']
    with pytest.raises(ValidationError):
        admin.add_staff({'firstName': 'Leela'})


def test_stock_classification(admin):
    assert admin.stock_status(admin.find('medicines', 'med-1')) == IN_STOCK
    assert admin.stock_status(admin.find('medicines', 'med-2')) == LOW_STOCK

    admin.update_medicine('med-2', {'stock': '0'})
    assert admin.stock_status(admin.find('medicines', 'med-2')) == OUT_OF_STOCK
    assert admin.filter_medicines('out') == [admin.find('medicines', 'med-2')]
    assert admin.stock_alerts() == [{'type': 'out', 'name': 'Paracetamol', 'stock': 0}]


def test_dispense_history_is_newest_first_with_doctor_names(admin):
    assert admin.dispense_history() == []
    admin.data['dispenseHistory'] = [
        {'id': 'disp-1', 'patient': 'Sonia Kapoor', 'medicine': 'Aspirin', 'quantity': 10,
         'doctorId': 'doc-1', 'date': '2024-05-10T09:00:00.000Z'},
        {'id': 'disp-2', 'patient': 'Rohan Das', 'medicine': 'Paracetamol', 'quantity': 5,
         'doctorId': 'doc-9', 'date': '2024-05-12T09:00:00.000Z'},
    ]

    history = admin.dispense_history()

    assert [d['id'] for d in history] == ['disp-2', 'disp-1']
    assert [d['doctor'] for d in history] == ['—', 'Dr. Riya Sen']
    assert 'doctor' not in admin.data['dispenseHistory'][0]


def test_add_medicine_validation(admin):
    medicine = admin.add_medicine({'name': 'Ibuprofen', 'stock': '40', 'threshold': '5', 'price': '2.25'})
    assert medicine['stock'] == 40
    assert medicine['price'] == 2.25
    with pytest.raises(ValidationError):
        admin.add_medicine({'name': 'Ibuprofen', 'stock': '-1'})
    with pytest.raises(ValidationError):
        admin.add_medicine({'stock': '10'})


def test_profile_and_preferences(admin, store, now):
    admin.update_profile({'phone': '+1 000', 'role': 'superuser'})
    admin.update_preferences({'hospitalName': 'St. Mary'})

    document = stored(store, now)
    assert document['profile']['phone'] == '+1 000'
    assert 'role' not in document['profile']
    assert document['preferences']['hospitalName'] == 'St. Mary'


def test_notifications(admin):
    assert len(admin.unread_notifications()) == 2
    admin.mark_notification_read('notif-1')
    assert [n['id'] for n in admin.unread_notifications()] == ['notif-2']


def test_dashboard_stats(admin, now):
    assert admin.dashboard_stats(now=now) == {
        'patients': 1,
        'doctors': 2,
        'todaysAppointments': 1,
        'pendingAppointments': 0,
        'staff': 1,
        'medicinesInStock': 2,
        'lowStock': 1,
        'unreadNotifications': 2,
    }


def test_recent_activity_is_newest_first(admin):
    activity = admin.recent_activity()
    assert len(activity) == 3
    assert activity[0]['meta'] == 'Sonia Kapoor with Dr. Riya Sen'
    assert activity[-1]['title'] == 'Low stock alert: Paracetamol'


def test_search(admin):
    assert admin.search('r') == {'doctors': [], 'patients': [], 'appointments': [], 'departments': []}
    results = admin.search('RIYA')
    assert [d['id'] for d in results['doctors']] == ['doc-1']
    assert admin.search('cardio')['departments'][0]['id'] == 'cardiology'
    assert admin.search('p001')['patients'][0]['id'] == 'pat-1'


def test_filter_doctors_and_patients(admin):
    assert [d['id'] for d in admin.filter_doctors(department_id='neurology')] == ['doc-2']
    assert [d['id'] for d in admin.filter_doctors(term='cardio')] == ['doc-1']
    assert admin.filter_patients(status='inactive') == []
    assert admin.filter_patients(term='sonia.k@')[0]['id'] == 'pat-1'


def test_filter_appointments_newest_first(admin):
    admin.data['appointments'].append({
        'id': 'apt-2', 'patient': 'Rohan Das', 'doctorId': 'doc-2', 'departmentId': 'neurology',
        'status': 'pending', 'datetime': '2030-01-01T09:00:00.000Z',
    })
    assert [a['id'] for a in admin.filter_appointments()] == ['apt-2', 'apt-1']
    assert [a['id'] for a in admin.filter_appointments(status='pending')] == ['apt-2']
    assert [a['id'] for a in admin.filter_appointments(date='2030-01-01')] == ['apt-2']
    assert [a['id'] for a in admin.filter_appointments(term='verma')] == ['apt-2']

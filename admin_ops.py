import re

from defaults import utcnow
from exceptions import ValidationError
from hms_core import (
    LOW_STOCK,
    OUT_OF_STOCK,
    RoleController,
    classify_stock,
    generate_id,
    parse_float,
    on_day,
    parse_int,
    timestamp_key,
)
from status_flow import APPOINTMENT_FLOW

DOCTOR_FIELDS = ('firstName', 'lastName', 'specialization', 'departmentId', 'experience', 'email', 'phone')
STAFF_FIELDS = ('firstName', 'lastName', 'role', 'departmentId', 'email', 'phone')
PATIENT_FIELDS = ('patientId', 'firstName', 'lastName', 'email', 'phone', 'lastVisit', 'status')
MEDICINE_FIELDS = ('name', 'stock', 'unit', 'threshold', 'price')
PROFILE_FIELDS = ('fullName', 'email', 'phone')
PREFERENCE_FIELDS = ('hospitalName', 'address', 'phone', 'email')


def slugify(name):
    return re.sub(r'[^a-z0-9]+', '-', name.lower()).strip('-')[:32]


def _pick(values, allowed):
    return {k: values[k] for k in allowed if k in values}


def _full_name(person):
    return f"{person.get('firstName', '')} {person.get('lastName', '')}".strip()


class AdminController(RoleController):
    """Hospital-wide records: departments, doctors, staff, patients, pharmacy, settings."""

    role = 'admin'

    # ------------------------------------------------------
    # DOCTORS
    # ------------------------------------------------------
    def _doctor_fields(self, doctor):
        fields = _pick(doctor, DOCTOR_FIELDS)
        if 'experience' in fields:
            fields['experience'] = parse_int(fields['experience'])
        return fields

    def add_doctor(self, doctor):
        fields = self._doctor_fields(doctor)
        if not str(fields.get('firstName') or '').strip() or not str(fields.get('lastName') or '').strip():
            raise ValidationError('Doctor first and last name are required.')
        fields.setdefault('experience', 0)
        fields.setdefault('departmentId', '')
        return self.create('doctors', 'doc', fields)

    def update_doctor(self, doctor_id, changes):
        return self.update('doctors', doctor_id, self._doctor_fields(changes))

    def delete_doctor(self, doctor_id):
        doctor = self.find('doctors', doctor_id)
        self.data['doctors'] = [d for d in self.data['doctors'] if d.get('id') != doctor_id]
        self.data['appointments'] = [a for a in self.data['appointments'] if a.get('doctorId') != doctor_id]
        self.state.save()
        return doctor

    def doctor_name(self, doctor_id):
        for doc in self.data['doctors']:
            if doc.get('id') == doctor_id:
                return f"Dr. {_full_name(doc)}"
        return '—'

    # ------------------------------------------------------
    # DEPARTMENTS
    # ------------------------------------------------------
    def add_department(self, name, description=''):
        name = (name or '').strip()
        if not name:
            raise ValidationError('Department name is required.')
        dept_id = slugify(name)
        taken = {d.get('id') for d in self.data['departments']}
        if not dept_id or dept_id in taken:
            dept_id = generate_id(dept_id or 'dept')
        department = {'id': dept_id, 'name': name, 'description': (description or '').strip()}
        self.data['departments'].append(department)
        self.state.save()
        return department

    def update_department(self, department_id, name=None, description=None):
        changes = {}
        if name is not None:
            changes['name'] = name.strip()
        if description is not None:
            changes['description'] = description.strip()
        return self.update('departments', department_id, changes)

    def delete_department(self, department_id):
        """
        Remove a department. Its doctors and staff stay on the books with an
        empty departmentId; appointments booked against it are dropped.
        """
        department = self.find('departments', department_id)
        self.data['departments'] = [d for d in self.data['departments'] if d.get('id') != department_id]
        for person in self.data['doctors'] + self.data['staff']:
            if person.get('departmentId') == department_id:
                person['departmentId'] = ''
        self.data['appointments'] = [
            a for a in self.data['appointments'] if a.get('departmentId') != department_id
        ]
        self.state.save()
        return department

    def department_distribution(self):
        counts = [
            {
                'id': dept.get('id'),
                'name': dept.get('name'),
                'count': sum(1 for d in self.data['doctors'] if d.get('departmentId') == dept.get('id')),
            }
            for dept in self.data['departments']
        ]
        return sorted(counts, key=lambda c: c['count'], reverse=True)

    # ------------------------------------------------------
    # STAFF
    # ------------------------------------------------------
    def add_staff(self, staff):
        fields = _pick(staff, STAFF_FIELDS)
        if not str(fields.get('firstName') or '').strip() or not fields.get('role'):
            raise ValidationError('Staff first name and role are required.')
        fields['departmentId'] = fields.get('departmentId') or ''
        return self.create('staff', 'staff', fields)

    def update_staff(self, staff_id, changes):
        return self.update('staff', staff_id, _pick(changes, STAFF_FIELDS))

    def delete_staff(self, staff_id):
        return self.delete('staff', staff_id)

    # ------------------------------------------------------
    # PATIENTS
    # ------------------------------------------------------
    def add_patient(self, patient):
        fields = _pick(patient, PATIENT_FIELDS)
        if not str(fields.get('firstName') or '').strip():
            raise ValidationError('Patient first name is required.')
        fields.setdefault('status', 'active')
        return self.create('patients', 'pat', fields)

    def update_patient(self, patient_id, changes):
        return self.update('patients', patient_id, _pick(changes, PATIENT_FIELDS))

    def delete_patient(self, patient_id):
        patient = self.find('patients', patient_id)
        self.data['patients'] = [p for p in self.data['patients'] if p.get('id') != patient_id]
        self.data['appointments'] = [a for a in self.data['appointments'] if a.get('patientId') != patient_id]
        self.state.save()
        return patient

    # ------------------------------------------------------
    # APPOINTMENTS
    # ------------------------------------------------------
    def confirm_appointment(self, appointment_id):
        return self.transition('appointments', appointment_id, APPOINTMENT_FLOW, 'confirmed')

    def complete_appointment(self, appointment_id):
        return self.transition('appointments', appointment_id, APPOINTMENT_FLOW, 'completed')

    def cancel_appointment(self, appointment_id):
        return self.transition('appointments', appointment_id, APPOINTMENT_FLOW, 'cancelled')

    # ------------------------------------------------------
    # PHARMACY
    # ------------------------------------------------------
    def _medicine_fields(self, medicine):
        fields = _pick(medicine, MEDICINE_FIELDS)
        if 'stock' in fields:
            fields['stock'] = parse_int(fields['stock'])
        if 'threshold' in fields:
            fields['threshold'] = parse_int(fields['threshold'])
        if 'price' in fields:
            fields['price'] = parse_float(fields['price'])
        return fields

    def add_medicine(self, medicine):
        fields = self._medicine_fields(medicine)
        if not str(fields.get('name') or '').strip():
            raise ValidationError('Medicine name is required.')
        if fields.get('stock', 0) < 0 or fields.get('threshold', 0) < 0:
            raise ValidationError('Stock and threshold cannot be negative.')
        fields.setdefault('stock', 0)
        fields.setdefault('threshold', 0)
        fields.setdefault('unit', 'tablets')
        fields.setdefault('price', 0.0)
        return self.create('medicines', 'med', fields)

    def update_medicine(self, medicine_id, changes):
        return self.update('medicines', medicine_id, self._medicine_fields(changes))

    def delete_medicine(self, medicine_id):
        return self.delete('medicines', medicine_id)

    @staticmethod
    def stock_status(medicine):
        return classify_stock(medicine.get('stock'), medicine.get('threshold'))

    def filter_medicines(self, kind='all'):
        if kind == 'low':
            return [m for m in self.data['medicines'] if self.stock_status(m) == LOW_STOCK]
        if kind == 'out':
            return [m for m in self.data['medicines'] if self.stock_status(m) == OUT_OF_STOCK]
        return list(self.data['medicines'])

    def stock_alerts(self, limit=5):
        alerts = [
            {'type': 'low', 'name': m.get('name'), 'stock': m.get('stock'), 'threshold': m.get('threshold')}
            for m in self.filter_medicines('low')
        ]
        alerts += [{'type': 'out', 'name': m.get('name'), 'stock': 0} for m in self.filter_medicines('out')]
        return alerts[:limit]

    def dispense_history(self):
        """Dispensed medicines, newest first, with the prescribing doctor's name."""
        history = sorted(self.data['dispenseHistory'],
                         key=lambda d: timestamp_key(d.get('date'))[1], reverse=True)
        return [{**entry, 'doctor': self.doctor_name(entry.get('doctorId'))} for entry in history]

    # ------------------------------------------------------
    # SETTINGS & NOTIFICATIONS
    # ------------------------------------------------------
    def update_profile(self, changes):
        self.data['profile'].update(_pick(changes, PROFILE_FIELDS))
        self.state.save()
        return self.data['profile']

    def update_preferences(self, changes):
        self.data['preferences'].update(_pick(changes, PREFERENCE_FIELDS))
        self.state.save()
        return self.data['preferences']

    def mark_notification_read(self, notification_id):
        return self.update('notifications', notification_id, {'read': True})

    def unread_notifications(self):
        return [n for n in self.data['notifications'] if not n.get('read')]

    # ------------------------------------------------------
    # DASHBOARD & SEARCH
    # ------------------------------------------------------
    def dashboard_stats(self, now=None):
        today = (now or utcnow()).date()
        appointments = self.data['appointments']
        return {
            'patients': len(self.data['patients']),
            'doctors': len(self.data['doctors']),
            'todaysAppointments': sum(1 for a in appointments if on_day(a.get('datetime'), today)),
            'pendingAppointments': sum(1 for a in appointments if a.get('status') == 'pending'),
            'staff': len(self.data['staff']),
            'medicinesInStock': sum(1 for m in self.data['medicines'] if (m.get('stock') or 0) > 0),
            'lowStock': len(self.filter_medicines('low')),
            'unreadNotifications': len(self.unread_notifications()),
        }

    def recent_activity(self, limit=5):
        activities = [
            {
                'type': 'appointment',
                'title': 'New appointment scheduled',
                'meta': f"{a.get('patient', '')} with {self.doctor_name(a.get('doctorId'))}",
                'time': a.get('datetime'),
            }
            for a in self.data['appointments'][:3]
        ]
        activities += [
            {
                'type': 'pharmacy' if n.get('type') == 'pharmacy' else 'appointment',
                'title': n.get('message'),
                'meta': 'System alert',
                'time': n.get('time'),
            }
            for n in self.data['notifications'][:2]
        ]
        activities.sort(key=lambda act: timestamp_key(act['time'])[1], reverse=True)
        return activities[:limit]

    def search(self, term):
        term = (term or '').strip().lower()
        if len(term) < 2:
            return {'doctors': [], 'patients': [], 'appointments': [], 'departments': []}
        return {
            'doctors': [
                d for d in self.data['doctors']
                if term in _full_name(d).lower() or term in str(d.get('specialization', '')).lower()
            ],
            'patients': [
                p for p in self.data['patients']
                if term in _full_name(p).lower() or term in str(p.get('patientId', '')).lower()
            ],
            'appointments': [
                a for a in self.data['appointments'] if term in str(a.get('patient', '')).lower()
            ],
            'departments': [
                d for d in self.data['departments'] if term in str(d.get('name', '')).lower()
            ],
        }

    def filter_doctors(self, department_id=None, term=''):
        term = (term or '').lower()
        result = list(self.data['doctors'])
        if department_id:
            result = [d for d in result if d.get('departmentId') == department_id]
        if term:
            result = [
                d for d in result
                if term in _full_name(d).lower() or term in str(d.get('specialization', '')).lower()
            ]
        return result

    def filter_staff(self, role=None, term=''):
        term = (term or '').lower()
        result = list(self.data['staff'])
        if role:
            result = [s for s in result if s.get('role') == role]
        if term:
            result = [s for s in result if term in _full_name(s).lower() or term in str(s.get('role', '')).lower()]
        return result

    def filter_patients(self, status=None, term=''):
        term = (term or '').lower()
        result = list(self.data['patients'])
        if status:
            result = [p for p in result if p.get('status') == status]
        if term:
            result = [
                p for p in result
                if term in str(p.get('patientId', '')).lower()
                or term in _full_name(p).lower()
                or term in str(p.get('email', '')).lower()
            ]
        return result

    def filter_appointments(self, status=None, date=None, term=''):
        """Appointments matching the filters, newest first. ``date`` is YYYY-MM-DD."""
        term = (term or '').lower()
        result = list(self.data['appointments'])
        if status:
            result = [a for a in result if a.get('status') == status]
        if date:
            result = [a for a in result if str(a.get('datetime', '')).split('T')[0] == date]
        if term:
            result = [
                a for a in result
                if term in str(a.get('patient', '')).lower() or term in self.doctor_name(a.get('doctorId')).lower()
            ]
        return sorted(result, key=lambda a: timestamp_key(a.get('datetime'))[1], reverse=True)

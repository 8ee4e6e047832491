"""
Default documents for every role.

Each builder returns a brand-new dict on every call, so a caller mutating
its document can never leak into another caller's defaults. Sample records
carry timestamps relative to ``now``.
"""
from datetime import datetime, timedelta, timezone

from exceptions import UnknownRole

ROLES = ('patient', 'doctor', 'admin', 'pharmacist', 'staff')


# ------------------------------------------------------
# TIME HELPERS
# ------------------------------------------------------
def utcnow():
    return datetime.now(timezone.utc)


def to_iso(dt):
    """ISO-8601 in UTC with millisecond precision and a Z suffix."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def parse_iso(value):
    """Parse a stored timestamp; returns None for anything unparseable."""
    if not value or not isinstance(value, str):
        return None
    try:
        dt = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def shifted(now, days=0, hours=0, minutes=0):
    return to_iso(now + timedelta(days=days, hours=hours, minutes=minutes))


# ------------------------------------------------------
# ADMIN
# ------------------------------------------------------
def _admin_defaults(now, session):
    session = session or {}
    full_name = f"{session.get('firstName') or ''} {session.get('lastName') or ''}".strip()
    return {
        'departments': [
            {'id': 'cardiology', 'name': 'Cardiology', 'description': 'Heart & vascular care'},
            {'id': 'neurology', 'name': 'Neurology', 'description': 'Brain & nervous system'},
            {'id': 'orthopedics', 'name': 'Orthopedics', 'description': 'Bones & muscular system'},
            {'id': 'pediatrics', 'name': 'Pediatrics', 'description': 'Child care & wellness'},
        ],
        'doctors': [
            {
                'id': 'doc-1',
                'firstName': 'Riya',
                'lastName': 'Sen',
                'specialization': 'Cardiologist',
                'departmentId': 'cardiology',
                'experience': 12,
                'email': 'riya.sen@hospital.com',
                'phone': '+1 234 567 8901',
            },
            {
                'id': 'doc-2',
                'firstName': 'Amit',
                'lastName': 'Verma',
                'specialization': 'Neurologist',
                'departmentId': 'neurology',
                'experience': 9,
                'email': 'amit.verma@hospital.com',
                'phone': '+1 234 567 8902',
            },
        ],
        'staff': [
            {
                'id': 'staff-1',
                'firstName': 'Sarah',
                'lastName': 'Johnson',
                'role': 'nurse',
                'departmentId': 'cardiology',
                'email': 'sarah.j@hospital.com',
                'phone': '+1 234 567 8910',
            },
        ],
        'patients': [
            {
                'id': 'pat-1',
                'patientId': 'P001',
                'firstName': 'Sonia',
                'lastName': 'Kapoor',
                'email': 'sonia.k@email.com',
                'phone': '+1 234 567 9001',
                'lastVisit': shifted(now, days=-5),
                'status': 'active',
            },
        ],
        'appointments': [
            {
                'id': 'apt-1',
                'patientId': 'pat-1',
                'patient': 'Sonia Kapoor',
                'doctorId': 'doc-1',
                'departmentId': 'cardiology',
                'status': 'confirmed',
                'datetime': to_iso(now),
            },
        ],
        'medicines': [
            {'id': 'med-1', 'name': 'Aspirin', 'stock': 150, 'unit': 'tablets', 'threshold': 20, 'price': 5.00},
            {'id': 'med-2', 'name': 'Paracetamol', 'stock': 8, 'unit': 'tablets', 'threshold': 10, 'price': 3.50},
        ],
        'dispenseHistory': [],
        'profile': {
            'fullName': full_name or session.get('username', ''),
            'email': session.get('email') or 'admin@hospital.com',
            'phone': '+1 234 567 0000',
        },
        'preferences': {
            'hospitalName': 'City General Medical Center',
            'address': '123 Medical Street, Healthcare City',
            'phone': '+1 234 567 0000',
            'email': 'info@citygeneral.example',
        },
        'notifications': [
            {'id': 'notif-1', 'message': 'New appointment scheduled', 'time': to_iso(now),
             'read': False, 'type': 'appointment'},
            {'id': 'notif-2', 'message': 'Low stock alert: Paracetamol', 'time': shifted(now, days=-1),
             'read': False, 'type': 'pharmacy'},
        ],
    }


# ------------------------------------------------------
# DOCTOR
# ------------------------------------------------------
def _doctor_defaults(now, session):
    return {
        'profile': {
            'specialization': 'General Medicine',
            'department': 'Internal Medicine',
        },
        'appointments': [
            {
                'id': 'apt-101',
                'patient': {'firstName': 'Sonia', 'lastName': 'Kapoor'},
                'datetime': shifted(now, hours=2),
                'status': 'pending',
                'notes': 'Complaints of chest discomfort',
            },
            {
                'id': 'apt-102',
                'patient': {'firstName': 'Rohan', 'lastName': 'Das'},
                'datetime': shifted(now, hours=5),
                'status': 'confirmed',
                'notes': 'Routine follow-up',
            },
            {
                'id': 'apt-103',
                'patient': {'firstName': 'Nisha', 'lastName': 'Gill'},
                'datetime': shifted(now, hours=-3),
                'status': 'completed',
                'notes': 'Migraine check-in',
            },
        ],
        'prescriptions': [
            {
                'id': 'rx-201',
                'appointmentId': 'apt-103',
                'patient': {'firstName': 'Nisha', 'lastName': 'Gill'},
                'createdAt': shifted(now, hours=-2),
                'medicines': [
                    {'name': 'Sumatriptan 50mg', 'dosage': '1 tablet', 'duration': 'As needed',
                     'frequency': 'Twice daily'},
                ],
                'notes': 'Take at onset of symptoms',
            },
        ],
    }


# ------------------------------------------------------
# PATIENT
# ------------------------------------------------------
def _patient_defaults(now, session):
    return {
        'departments': [
            {'id': 'cardiology', 'name': 'Cardiology', 'description': 'Heart & circulatory system'},
            {'id': 'neurology', 'name': 'Neurology', 'description': 'Brain & nervous system'},
            {'id': 'orthopedics', 'name': 'Orthopedics', 'description': 'Bones & muscular system'},
            {'id': 'pediatrics', 'name': 'Pediatrics', 'description': 'Child care & wellness'},
        ],
        'doctors': [
            {'id': 'd1', 'firstName': 'Riya', 'lastName': 'Sen',
             'specialization': 'Interventional Cardiologist', 'experience': 12, 'departmentId': 'cardiology'},
            {'id': 'd2', 'firstName': 'Amit', 'lastName': 'Verma',
             'specialization': 'Neurologist', 'experience': 9, 'departmentId': 'neurology'},
            {'id': 'd3', 'firstName': 'Sahana', 'lastName': 'Roy',
             'specialization': 'Orthopedic Surgeon', 'experience': 15, 'departmentId': 'orthopedics'},
            {'id': 'd4', 'firstName': 'Vikram', 'lastName': 'Patel',
             'specialization': 'Pediatrician', 'experience': 7, 'departmentId': 'pediatrics'},
        ],
        'appointments': [
            {'id': 'apt-1', 'doctorId': 'd1', 'datetime': shifted(now, days=1),
             'status': 'confirmed', 'notes': 'Follow-up for ECG'},
            {'id': 'apt-2', 'doctorId': 'd3', 'datetime': shifted(now, days=5),
             'status': 'pending', 'notes': 'Knee pain consultation'},
        ],
        'prescriptions': [
            {'id': 'rx-1', 'doctorId': 'd2', 'date': shifted(now, days=-10), 'dispensed': True,
             'medicines': ['Neurocalm 10mg', 'Omega-3']},
            {'id': 'rx-2', 'doctorId': 'd1', 'date': shifted(now, days=-32), 'dispensed': False,
             'medicines': ['Atorvastatin 20mg', 'Aspirin 75mg', 'Metoprolol 50mg']},
        ],
        'careUpdates': [
            {'id': 'bp', 'label': 'Blood pressure', 'value': '118 / 76',
             'detail': 'Morning clinic reading', 'trend': 'stable'},
            {'id': 'heart', 'label': 'Heart rate', 'value': '68 bpm',
             'detail': 'Resting average this week', 'trend': 'improving'},
            {'id': 'sleep', 'label': 'Sleep', 'value': '7h 45m',
             'detail': 'Rolling 7-day average', 'trend': 'stable'},
            {'id': 'activity', 'label': 'Activity', 'value': '6,400 steps',
             'detail': 'Goal: 8,000 daily', 'trend': 'pending'},
        ],
        'goals': [
            {'id': 'steps-goal', 'label': 'Steps', 'progress': 64, 'target': '8k steps'},
            {'id': 'hydration-goal', 'label': 'Hydration', 'progress': 72, 'target': '2L water'},
            {'id': 'medication-goal', 'label': 'Medication adherence', 'progress': 92, 'target': 'All doses'},
        ],
        'medicationsSchedule': [
            {'id': 'med-1', 'name': 'Atorvastatin', 'dosage': '20mg', 'schedule': '9:00 PM',
             'context': 'After dinner', 'status': 'due'},
            {'id': 'med-2', 'name': 'Metoprolol', 'dosage': '50mg', 'schedule': '8:00 AM',
             'context': 'With breakfast', 'status': 'completed'},
            {'id': 'med-3', 'name': 'Vitamin D3', 'dosage': '2,000 IU', 'schedule': 'Sunday',
             'context': 'Weekly supplement', 'status': 'upcoming'},
        ],
        'checklist': [
            {'id': 'ck-water', 'label': 'Log 2L of water', 'completed': False},
            {'id': 'ck-walk', 'label': '20 min walk', 'completed': False},
            {'id': 'ck-meditate', 'label': 'Breathing exercise', 'completed': True},
        ],
        'labs': [
            {'id': 'lab-1', 'title': 'Lipid profile', 'date': shifted(now, days=-14), 'status': 'Normal',
             'summary': 'LDL trending downward, HDL within range'},
            {'id': 'lab-2', 'title': 'Comprehensive metabolic panel', 'date': shifted(now, days=-32),
             'status': 'Review', 'summary': 'Slightly elevated fasting glucose, monitor diet'},
        ],
        'messages': [
            {'id': 'msg-1', 'sender': 'Dr. Riya Sen', 'role': 'Cardiology', 'time': shifted(now, days=-1),
             'snippet': 'ECG looks stable. Keep the current medication plan.', 'unread': True},
            {'id': 'msg-2', 'sender': 'Care Navigator', 'role': 'Patient Success', 'time': shifted(now, days=-3),
             'snippet': 'Remember to upload your insurance card for the new plan year.', 'unread': False},
        ],
        'billing': {
            'outstanding': 240.5,
            'dueDate': shifted(now, days=7),
            'invoices': [
                {'id': 'inv-1', 'label': 'Cardiology follow-up', 'amount': 120, 'status': 'due',
                 'date': shifted(now, days=-5)},
                {'id': 'inv-2', 'label': 'Lab processing', 'amount': 98.5, 'status': 'processing',
                 'date': shifted(now, days=-2)},
                {'id': 'inv-3', 'label': 'Medication refill', 'amount': 22, 'status': 'paid',
                 'date': shifted(now, days=-9)},
            ],
        },
        'benefits': {
            'provider': 'HealSure Gold',
            'plan': 'Preferred Care 80',
            'memberId': 'HS-23893',
            'coverage': '80% in-network',
            'prescriptionCoverage': 'Included',
        },
        'resources': [
            {'id': 'res-1', 'title': '24/7 nurse line', 'description': 'Speak with a nurse within minutes.',
             'actionLabel': 'Call nurse', 'href': 'tel:+15551234567'},
            {'id': 'res-2', 'title': 'Download visit summary', 'description': 'Latest visit notes and attachments.',
             'actionLabel': 'Download PDF', 'href': '#'},
            {'id': 'res-3', 'title': 'Mental wellbeing', 'description': 'Access guided meditation & support.',
             'actionLabel': 'Open guide', 'href': '#'},
        ],
    }


# ------------------------------------------------------
# PHARMACIST
# ------------------------------------------------------
def _pharmacist_defaults(now, session):
    return {
        'prescriptions': [
            {
                'id': 'rx-501',
                'patient': {'firstName': 'Sonia', 'lastName': 'Kapoor'},
                'doctor': 'Dr. Riya Sen',
                'createdAt': shifted(now, hours=-4),
                'dispensed': False,
                'notes': 'Check blood pressure before dispensing.',
                'medicines': [
                    {'name': 'Amlodipine 5mg', 'dosage': '1 tablet', 'duration': '30 days', 'frequency': 'Once daily'},
                    {'name': 'Atorvastatin 20mg', 'dosage': '1 tablet', 'duration': '30 days',
                     'frequency': 'Once daily'},
                ],
            },
            {
                'id': 'rx-502',
                'patient': {'firstName': 'Rohan', 'lastName': 'Das'},
                'doctor': 'Dr. Amit Verma',
                'createdAt': shifted(now, hours=-12),
                'dispensed': True,
                'notes': 'Patient informed about potential drowsiness.',
                'medicines': [
                    {'name': 'Gabapentin 300mg', 'dosage': '1 capsule', 'duration': '14 days',
                     'frequency': 'Twice daily'},
                ],
            },
        ],
        'inventory': [
            {'id': 'med-1', 'medicineName': 'Aspirin', 'stock': 120, 'unit': 'tablets', 'lowStockThreshold': 25},
            {'id': 'med-2', 'medicineName': 'Metformin', 'stock': 60, 'unit': 'tablets', 'lowStockThreshold': 20},
            {'id': 'med-3', 'medicineName': 'Insulin', 'stock': 12, 'unit': 'vials', 'lowStockThreshold': 15},
        ],
    }


# ------------------------------------------------------
# STAFF
# ------------------------------------------------------
def _staff_defaults(now, session):
    return {
        'visits': [
            {
                'id': 'visit-1',
                'patient': {'firstName': 'Sonia', 'lastName': 'Kapoor', 'patientId': 'PAT-123456'},
                'doctor': 'Dr. Riya Sen',
                'purpose': 'Follow-up',
                'notes': 'Patient reported dizziness last visit',
                'status': 'waiting',
                'visitDate': shifted(now, minutes=-30),
            },
            {
                'id': 'visit-2',
                'patient': {'firstName': 'Rohan', 'lastName': 'Das', 'patientId': 'PAT-987654'},
                'doctor': 'Dr. Amit Verma',
                'purpose': 'MRI results review',
                'notes': 'Bring previous MRI scans',
                'status': 'in-progress',
                'visitDate': shifted(now, minutes=-10),
            },
        ],
        'billing': [
            {'id': 'bill-1', 'patient': 'Sonia Kapoor', 'type': 'Consultation', 'amount': 1200,
             'dueDate': shifted(now, days=0), 'status': 'pending'},
            {'id': 'bill-2', 'patient': 'Rohan Das', 'type': 'MRI Scan', 'amount': 3500,
             'dueDate': shifted(now, days=-1), 'status': 'overdue'},
        ],
        'highlights': [
            {'title': 'Walk-ins', 'value': 4, 'description': 'Patients without appointments'},
            {'title': 'Completed Visits', 'value': 12, 'description': 'Handled by front desk'},
            {'title': 'Billing Collected', 'value': '₹18,500', 'description': 'Settled today'},
        ],
        'actions': [
            "Confirm tomorrow's appointments",
            'Send reminders for overdue bills',
            'Prepare discharge summaries',
        ],
    }


# Role -> (builder, fields defaulted independently when absent or empty in storage)
SCHEMAS = {
    'admin': (_admin_defaults, (
        'departments', 'doctors', 'staff', 'patients', 'appointments', 'medicines',
        'dispenseHistory', 'profile', 'preferences', 'notifications',
    )),
    'doctor': (_doctor_defaults, ('appointments', 'prescriptions')),
    'patient': (_patient_defaults, (
        'appointments', 'prescriptions', 'careUpdates', 'goals', 'medicationsSchedule',
        'checklist', 'labs', 'messages', 'billing', 'benefits', 'resources',
    )),
    'pharmacist': (_pharmacist_defaults, ('prescriptions', 'inventory')),
    'staff': (_staff_defaults, ('visits', 'billing', 'highlights', 'actions')),
}


def _schema(role):
    try:
        return SCHEMAS[role]
    except KeyError:
        raise UnknownRole(role) from None


def defaults(role, now=None, session=None):
    """Return a fresh default document for ``role``."""
    builder, _ = _schema(role)
    return builder(now or utcnow(), session)


def collection_fields(role):
    return _schema(role)[1]

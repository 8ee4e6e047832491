import copy

from defaults import to_iso, utcnow
from exceptions import InvalidTransition, ValidationError
from hms_core import RoleController, on_day, timestamp_key
from status_flow import APPOINTMENT_FLOW

MEDICINE_KEYS = ('name', 'dosage', 'duration', 'frequency')


def clean_medicines(medicines):
    """Strip every field and drop entries missing a name or dosage, or that are not objects."""
    if not isinstance(medicines, (list, tuple)):
        return []
    cleaned = []
    for med in medicines:
        if not isinstance(med, dict):
            continue
        entry = {key: str(med.get(key) or '').strip() for key in MEDICINE_KEYS}
        if entry['name'] and entry['dosage']:
            cleaned.append(entry)
    return cleaned


class DoctorController(RoleController):
    role = 'doctor'

    def confirm_appointment(self, appointment_id):
        return self.transition('appointments', appointment_id, APPOINTMENT_FLOW, 'confirmed')

    def complete_appointment(self, appointment_id):
        return self.transition('appointments', appointment_id, APPOINTMENT_FLOW, 'completed')

    def create_prescription(self, appointment_id, medicines, notes=''):
        """
        Write a prescription for an open appointment and complete the appointment.

        The newest prescription goes to the front of the list.
        """
        cleaned = clean_medicines(medicines)
        if not cleaned:
            raise ValidationError('Add at least one medicine with a name and dosage.')
        appointment = self.find('appointments', appointment_id)
        status = appointment.get('status')
        if not APPOINTMENT_FLOW.can_transition(status, 'completed'):
            raise InvalidTransition('appointment', status, 'completed')

        prescription = {
            'appointmentId': appointment['id'],
            'patient': copy.deepcopy(appointment.get('patient')),
            'createdAt': to_iso(utcnow()),
            'medicines': cleaned,
            'notes': (notes or '').strip(),
        }
        appointment['status'] = 'completed'
        return self.create('prescriptions', 'rx', prescription, prepend=True)

    # ------------------------------------------------------
    # QUERIES
    # ------------------------------------------------------
    def sorted_appointments(self):
        return sorted(self.data['appointments'], key=lambda a: timestamp_key(a.get('datetime')))

    def stats(self, now=None):
        today = (now or utcnow()).date()
        appointments = self.data['appointments']
        return {
            'today': sum(1 for a in appointments if on_day(a.get('datetime'), today)),
            'pending': sum(1 for a in appointments if a.get('status') == 'pending'),
            'confirmed': sum(1 for a in appointments if a.get('status') == 'confirmed'),
        }

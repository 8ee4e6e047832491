from datetime import datetime, timezone

from defaults import parse_iso, to_iso, utcnow
from exceptions import ValidationError
from hms_core import RoleController, timestamp_key
from status_flow import APPOINTMENT_FLOW


class PatientController(RoleController):
    role = 'patient'

    # ------------------------------------------------------
    # APPOINTMENTS
    # ------------------------------------------------------
    def book_appointment(self, doctor_id, date, time, notes=''):
        """Request an appointment; ``date`` is YYYY-MM-DD and ``time`` HH:MM."""
        if not doctor_id or not date or not time:
            raise ValidationError('Please choose a doctor, date, and time.')
        try:
            when = datetime.strptime(f"{date} {time}", '%Y-%m-%d %H:%M').replace(tzinfo=timezone.utc)
        except ValueError:
            raise ValidationError('Please choose a valid date and time.') from None
        self.find('doctors', doctor_id)

        appointment = {
            'doctorId': doctor_id,
            'datetime': to_iso(when),
            'status': 'pending',
            'notes': (notes or '').strip(),
        }
        return self.create('appointments', 'apt', appointment)

    def cancel_appointment(self, appointment_id):
        return self.transition('appointments', appointment_id, APPOINTMENT_FLOW, 'cancelled')

    def sorted_appointments(self):
        return sorted(self.data['appointments'], key=lambda a: timestamp_key(a.get('datetime')))

    def next_appointment(self, now=None):
        """Earliest pending or confirmed appointment still ahead of ``now``."""
        now = now or utcnow()
        for apt in self.sorted_appointments():
            when = parse_iso(apt.get('datetime'))
            if when and when > now and apt.get('status') in ('pending', 'confirmed'):
                return apt
        return None

    # ------------------------------------------------------
    # CARE PLAN
    # ------------------------------------------------------
    def set_checklist_item(self, item_id, completed):
        return self.update('checklist', item_id, {'completed': bool(completed)})

    def mark_message_read(self, message_id):
        return self.update('messages', message_id, {'unread': False})

    # ------------------------------------------------------
    # QUERIES
    # ------------------------------------------------------
    def doctors_in_department(self, department_id=None):
        if not department_id:
            return list(self.data['doctors'])
        return [d for d in self.data['doctors'] if d.get('departmentId') == department_id]

    def recent_prescriptions(self, limit=5):
        ordered = sorted(self.data['prescriptions'], key=lambda rx: timestamp_key(rx.get('date'))[1], reverse=True)
        return ordered[:limit]

    def outstanding_balance(self):
        billing = self.data.get('billing') or {}
        return billing.get('outstanding') or 0

    def stats(self, now=None):
        now = now or utcnow()
        upcoming = 0
        for apt in self.data['appointments']:
            when = parse_iso(apt.get('datetime'))
            if when and when >= now:
                upcoming += 1
        return {
            'upcoming': upcoming,
            'confirmed': sum(1 for a in self.data['appointments'] if a.get('status') == 'confirmed'),
            'doctors': len(self.data['doctors']),
        }

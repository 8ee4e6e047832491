from datetime import datetime

from defaults import to_iso, utcnow
from exceptions import ValidationError
from hms_core import RoleController, on_day, timestamp_key
from status_flow import BILL_FLOW, VISIT_FLOW

VISIT_STATUSES = ('waiting', 'in-progress', 'completed', 'cancelled')


def split_name(name):
    """'Sonia Kapoor Rao' -> ('Sonia', 'Kapoor'); only the first two words are kept."""
    parts = name.split(' ')
    first = parts[0] or name
    last = parts[1] if len(parts) > 1 else ''
    return first, last


class StaffController(RoleController):
    """Front desk: walk-in check-ins and billing."""

    role = 'staff'

    # ------------------------------------------------------
    # VISITS
    # ------------------------------------------------------
    def check_in(self, name, doctor, time, status='waiting', notes='', now=None):
        name = (name or '').strip()
        doctor = (doctor or '').strip()
        time = (time or '').strip()
        if not name or not doctor or not time:
            raise ValidationError('Please fill patient name, doctor, and appointment time.')
        try:
            clock = datetime.strptime(time, '%H:%M')
        except ValueError:
            raise ValidationError('Appointment time must look like HH:MM.') from None
        status = (status or 'waiting').strip()
        if status not in VISIT_STATUSES:
            raise ValidationError(f"Unknown visit status: {status}")

        now = now or utcnow()
        first, last = split_name(name)
        visit = {
            'patient': {'firstName': first, 'lastName': last, 'patientId': None},
            'doctor': doctor,
            'purpose': 'Walk-in',
            'notes': (notes or '').strip(),
            'status': status,
            'visitDate': to_iso(now.replace(hour=clock.hour, minute=clock.minute, second=0, microsecond=0)),
        }
        return self.create('visits', 'visit', visit)

    def set_visit_status(self, visit_id, status):
        return self.transition('visits', visit_id, VISIT_FLOW, status)

    def sorted_visits(self):
        """Most recent visit first."""
        return sorted(self.data['visits'], key=lambda v: timestamp_key(v.get('visitDate'))[1], reverse=True)

    # ------------------------------------------------------
    # BILLING
    # ------------------------------------------------------
    def mark_bill_paid(self, bill_id):
        return self.transition('billing', bill_id, BILL_FLOW, 'paid')

    def remove_bill(self, bill_id):
        return self.delete('billing', bill_id)

    def stats(self, now=None):
        today = (now or utcnow()).date()
        visits = self.data['visits']
        return {
            'todaysVisits': sum(1 for v in visits if on_day(v.get('visitDate'), today)),
            'totalVisits': len(visits),
            'pendingBills': sum(1 for b in self.data['billing'] if b.get('status') != 'paid'),
        }

from exceptions import InvalidTransition


class StatusFlow:
    """Allowed status moves for one kind of record."""

    def __init__(self, kind, transitions, field='status'):
        self.kind = kind
        self.transitions = {state: frozenset(targets) for state, targets in transitions.items()}
        self.field = field

    def current(self, record):
        return record.get(self.field)

    def can_transition(self, current, target):
        return target in self.transitions.get(current, ())

    def apply(self, record, target):
        """Set the new status on ``record``; an illegal move leaves it untouched."""
        current = self.current(record)
        if not self.can_transition(current, target):
            raise InvalidTransition(self.kind, current, target)
        record[self.field] = target
        return record


class DispenseFlow(StatusFlow):
    """Prescriptions carry a ``dispensed`` boolean instead of a status string."""

    def __init__(self):
        super().__init__('prescription', {'pending': {'dispensed'}}, field='dispensed')

    def current(self, record):
        return 'dispensed' if record.get('dispensed') else 'pending'

    def apply(self, record, target):
        current = self.current(record)
        if not self.can_transition(current, target):
            raise InvalidTransition(self.kind, current, target)
        record['dispensed'] = target == 'dispensed'
        return record


APPOINTMENT_FLOW = StatusFlow('appointment', {
    'pending': {'confirmed', 'completed', 'cancelled'},
    'confirmed': {'completed', 'cancelled'},
})

BILL_FLOW = StatusFlow('bill', {
    'pending': {'paid', 'overdue'},
    'overdue': {'paid'},
})

VISIT_FLOW = StatusFlow('visit', {
    'waiting': {'in-progress', 'completed', 'cancelled'},
    'in-progress': {'completed'},
})

DISPENSE_FLOW = DispenseFlow()

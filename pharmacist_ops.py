from exceptions import ValidationError
from hms_core import IN_STOCK, RoleController, classify_stock, parse_int
from status_flow import DISPENSE_FLOW

PRESCRIPTION_FILTERS = ('all', 'pending', 'dispensed')


class PharmacistController(RoleController):
    role = 'pharmacist'

    # ------------------------------------------------------
    # PRESCRIPTIONS
    # ------------------------------------------------------
    def mark_dispensed(self, prescription_id):
        return self.transition('prescriptions', prescription_id, DISPENSE_FLOW, 'dispensed')

    def filter_prescriptions(self, status='all'):
        if status not in PRESCRIPTION_FILTERS:
            raise ValidationError(f"Unknown prescription filter: {status}")
        if status == 'pending':
            return [rx for rx in self.data['prescriptions'] if not rx.get('dispensed')]
        if status == 'dispensed':
            return [rx for rx in self.data['prescriptions'] if rx.get('dispensed')]
        return list(self.data['prescriptions'])

    # ------------------------------------------------------
    # INVENTORY
    # ------------------------------------------------------
    def add_inventory(self, name, stock, threshold, unit='tablets'):
        name = (name or '').strip()
        try:
            stock = parse_int(stock, default=None)
            threshold = parse_int(threshold, default=None)
        except ValidationError:
            stock = threshold = None
        if not name or stock is None or stock <= 0 or threshold is None or threshold < 0:
            raise ValidationError('Fill all fields with valid values.')

        item = {
            'medicineName': name,
            'stock': stock,
            'unit': unit or 'tablets',
            'lowStockThreshold': threshold,
        }
        return self.create('inventory', 'med', item)

    def restock(self, item_id, amount):
        try:
            amount = parse_int(amount, default=None)
        except ValidationError:
            amount = None
        if amount is None or amount <= 0:
            raise ValidationError('Enter a valid stock amount')
        item = self.find('inventory', item_id)
        return self.update('inventory', item_id, {'stock': (item.get('stock') or 0) + amount})

    def remove_inventory(self, item_id):
        return self.delete('inventory', item_id)

    @staticmethod
    def stock_status(item):
        return classify_stock(item.get('stock'), item.get('lowStockThreshold'))

    def stats(self):
        inventory = self.data['inventory']
        return {
            'pending': len(self.filter_prescriptions('pending')),
            'inventoryItems': len(inventory),
            'lowStock': sum(1 for item in inventory if self.stock_status(item) != IN_STOCK),
        }

import logging

from flask import Flask, Response, g, jsonify, request

from admin_ops import AdminController
from charts import appointments_per_day_png, department_distribution_png
from config import configure_logging, get_settings
from data_manager import DocumentStore
from doctor_ops import DoctorController
from exceptions import (
    EntityNotFound,
    InvalidCredentials,
    InvalidTransition,
    StorageError,
    UnknownRole,
    UsernameTaken,
    ValidationError,
)
from hms_core import SAVE_FAILED_NOTICE, AppState
from local_storage import get_storage
from patient_ops import PatientController
from pharmacist_ops import PharmacistController
from session_directory import (
    LOGIN_PAGE,
    SessionDirectory,
    has_errors,
    home_page,
    validate_login,
    validate_signup,
)
from staff_ops import StaffController

logger = logging.getLogger(__name__)

ADMIN_APPOINTMENT_ACTIONS = {
    'confirm': 'confirm_appointment',
    'complete': 'complete_appointment',
    'cancel': 'cancel_appointment',
}

# collection -> (add, update, delete) on AdminController
ADMIN_RESOURCES = {
    'doctors': ('add_doctor', 'update_doctor', 'delete_doctor'),
    'staff': ('add_staff', 'update_staff', 'delete_staff'),
    'patients': ('add_patient', 'update_patient', 'delete_patient'),
    'medicines': ('add_medicine', 'update_medicine', 'delete_medicine'),
}


def _payload():
    """Request body as a dict, JSON or form-encoded."""
    body = request.get_json(silent=True)
    if isinstance(body, dict):
        return body
    return request.form.to_dict()


def _reply(payload, status=200):
    state = g.get('state')
    if state is not None and state.save_failed:
        payload = {**payload, 'warning': SAVE_FAILED_NOTICE}
    return jsonify(payload), status


def _error(message, status, **extra):
    return jsonify({'error': message, **extra}), status


def _png(image):
    if image is None:
        return '', 204
    return Response(image, mimetype='image/png')


def create_app(storage=None, settings=None):
    settings = settings or get_settings()
    if storage is None:
        storage = get_storage(settings)

    app = Flask(__name__)
    app.secret_key = settings.secret_key

    directory = SessionDirectory(storage, settings.key_prefix)
    store = DocumentStore(storage, settings.key_prefix)
    app.extensions['hms'] = {'directory': directory, 'store': store}

    # --- Role check decorator ---
    def login_required(*roles):
        def decorator(func):
            def wrapper(*args, **kwargs):
                pages = []
                current = directory.require_session(roles, redirect=pages.append)
                if current is None:
                    if pages[0] == LOGIN_PAGE:
                        return _error('Please log in first.', 401, redirect=LOGIN_PAGE)
                    return _error('Access denied.', 403, redirect=pages[0])
                g.session = current
                g.state = AppState(store, current)
                return func(*args, **kwargs)
            wrapper.__name__ = func.__name__
            return wrapper
        return decorator

    # ---------------- Errors ----------------
    @app.errorhandler(ValidationError)
    def handle_validation(e):
        return _error(str(e), 400, errors=e.errors)

    @app.errorhandler(UnknownRole)
    def handle_unknown_role(e):
        return _error(str(e), 400)

    @app.errorhandler(InvalidCredentials)
    def handle_credentials(e):
        return _error(str(e), 401)

    @app.errorhandler(EntityNotFound)
    def handle_not_found(e):
        return _error(str(e), 404)

    @app.errorhandler(UsernameTaken)
    def handle_username_taken(e):
        return _error(str(e), 409, errors={'username': str(e)})

    @app.errorhandler(InvalidTransition)
    def handle_transition(e):
        return _error(str(e), 409)

    @app.errorhandler(StorageError)
    def handle_storage(e):
        logger.warning("Storage refused a request: %s", e)
        return _error(SAVE_FAILED_NOTICE, 507)

    # ---------------- Auth ----------------
    @app.route('/api/signup', methods=['POST'])
    def signup():
        form = _payload()
        errors = validate_signup(form)
        if has_errors(errors):
            raise ValidationError('Please fix the highlighted fields.', errors)
        user = directory.register_user(form)
        return jsonify({
            'message': 'Account created! Please sign in to continue.',
            'username': user['username'],
            'role': user['role'],
            'patientId': user['patientId'],
            'redirect': LOGIN_PAGE,
        }), 201

    @app.route('/api/login', methods=['POST'])
    def login():
        form = _payload()
        errors = validate_login(form)
        if has_errors(errors):
            raise ValidationError('Please fix the highlighted fields.', errors)
        try:
            user = directory.authenticate(form.get('username'), form.get('password'))
        except InvalidCredentials:
            logger.info("Failed login for %s", str(form.get('username')).strip())
            raise
        current = directory.create_session(user)
        return jsonify({'session': current, 'redirect': home_page(current['role'])})

    @app.route('/api/logout', methods=['POST'])
    def logout():
        current = directory.get_session()
        directory.clear_session()
        if current:
            logger.info("Logged out %s", current.get('username'))
        return jsonify({'message': 'Logged out successfully.', 'redirect': LOGIN_PAGE})

    @app.route('/api/session')
    @login_required()
    def current_session():
        return jsonify({'session': g.session, 'home': home_page(g.session['role'])})

    @app.route('/api/password', methods=['POST'])
    @login_required()
    def change_password():
        form = _payload()
        directory.change_password(g.session['username'], form.get('newPassword'), form.get('confirmPassword'))
        return jsonify({'message': 'Password updated'})

    # ---------------- Admin ----------------
    @app.route('/api/admin')
    @login_required('admin')
    def admin_dashboard():
        admin = AdminController(g.state)
        return _reply({
            'document': admin.data,
            'stats': admin.dashboard_stats(),
            'activity': admin.recent_activity(),
            'alerts': admin.stock_alerts(),
            'distribution': admin.department_distribution(),
        })

    @app.route('/api/admin/search')
    @login_required('admin')
    def admin_search():
        return _reply(AdminController(g.state).search(request.args.get('q', '')))

    @app.route('/api/admin/doctors')
    @login_required('admin')
    def admin_doctors():
        doctors = AdminController(g.state).filter_doctors(request.args.get('department'), request.args.get('q', ''))
        return _reply({'doctors': doctors})

    @app.route('/api/admin/staff')
    @login_required('admin')
    def admin_staff():
        staff = AdminController(g.state).filter_staff(request.args.get('role'), request.args.get('q', ''))
        return _reply({'staff': staff})

    @app.route('/api/admin/patients')
    @login_required('admin')
    def admin_patients():
        patients = AdminController(g.state).filter_patients(request.args.get('status'), request.args.get('q', ''))
        return _reply({'patients': patients})

    @app.route('/api/admin/medicines')
    @login_required('admin')
    def admin_medicines():
        admin = AdminController(g.state)
        medicines = [
            {**m, 'stockStatus': admin.stock_status(m)}
            for m in admin.filter_medicines(request.args.get('kind', 'all'))
        ]
        return _reply({'medicines': medicines})

    @app.route('/api/admin/dispense-history')
    @login_required('admin')
    def admin_dispense_history():
        return _reply({'dispenseHistory': AdminController(g.state).dispense_history()})

    @app.route('/api/admin/<collection>', methods=['POST'])
    @login_required('admin')
    def admin_create(collection):
        if collection not in ADMIN_RESOURCES:
            return _error(f"Unknown collection: {collection}", 404)
        add, _, _ = ADMIN_RESOURCES[collection]
        return _reply(getattr(AdminController(g.state), add)(_payload()), 201)

    @app.route('/api/admin/<collection>/<entity_id>', methods=['PUT', 'DELETE'])
    @login_required('admin')
    def admin_modify(collection, entity_id):
        if collection not in ADMIN_RESOURCES:
            return _error(f"Unknown collection: {collection}", 404)
        _, update, delete = ADMIN_RESOURCES[collection]
        admin = AdminController(g.state)
        if request.method == 'DELETE':
            return _reply(getattr(admin, delete)(entity_id))
        return _reply(getattr(admin, update)(entity_id, _payload()))

    @app.route('/api/admin/departments', methods=['GET', 'POST'])
    @login_required('admin')
    def admin_departments():
        admin = AdminController(g.state)
        if request.method == 'GET':
            return _reply({'departments': admin.department_distribution()})
        form = _payload()
        return _reply(admin.add_department(form.get('name'), form.get('description', '')), 201)

    @app.route('/api/admin/departments/<department_id>', methods=['PUT', 'DELETE'])
    @login_required('admin')
    def admin_department(department_id):
        admin = AdminController(g.state)
        if request.method == 'DELETE':
            return _reply(admin.delete_department(department_id))
        form = _payload()
        return _reply(admin.update_department(department_id, form.get('name'), form.get('description')))

    @app.route('/api/admin/appointments')
    @login_required('admin')
    def admin_appointments():
        args = request.args
        appointments = AdminController(g.state).filter_appointments(
            args.get('status'), args.get('date'), args.get('q', ''))
        return _reply({'appointments': appointments})

    @app.route('/api/admin/appointments/<appointment_id>/<action>', methods=['POST'])
    @login_required('admin')
    def admin_appointment_action(appointment_id, action):
        if action not in ADMIN_APPOINTMENT_ACTIONS:
            return _error(f"Unknown action: {action}", 404)
        admin = AdminController(g.state)
        return _reply(getattr(admin, ADMIN_APPOINTMENT_ACTIONS[action])(appointment_id))

    @app.route('/api/admin/profile', methods=['PUT'])
    @login_required('admin')
    def admin_profile():
        return _reply(AdminController(g.state).update_profile(_payload()))

    @app.route('/api/admin/preferences', methods=['PUT'])
    @login_required('admin')
    def admin_preferences():
        return _reply(AdminController(g.state).update_preferences(_payload()))

    @app.route('/api/admin/notifications/<notification_id>/read', methods=['POST'])
    @login_required('admin')
    def admin_notification_read(notification_id):
        return _reply(AdminController(g.state).mark_notification_read(notification_id))

    @app.route('/api/admin/charts/appointments.png')
    @login_required('admin')
    def admin_appointments_chart():
        return _png(appointments_per_day_png(g.state.document['appointments']))

    @app.route('/api/admin/charts/departments.png')
    @login_required('admin')
    def admin_departments_chart():
        return _png(department_distribution_png(AdminController(g.state).department_distribution()))

    # ---------------- Doctor ----------------
    @app.route('/api/doctor')
    @login_required('doctor')
    def doctor_dashboard():
        doctor = DoctorController(g.state)
        return _reply({
            'document': doctor.data,
            'appointments': doctor.sorted_appointments(),
            'stats': doctor.stats(),
        })

    @app.route('/api/doctor/appointments/<appointment_id>/confirm', methods=['POST'])
    @login_required('doctor')
    def doctor_confirm(appointment_id):
        return _reply(DoctorController(g.state).confirm_appointment(appointment_id))

    @app.route('/api/doctor/appointments/<appointment_id>/complete', methods=['POST'])
    @login_required('doctor')
    def doctor_complete(appointment_id):
        return _reply(DoctorController(g.state).complete_appointment(appointment_id))

    @app.route('/api/doctor/prescriptions', methods=['POST'])
    @login_required('doctor')
    def doctor_prescribe():
        form = _payload()
        prescription = DoctorController(g.state).create_prescription(
            form.get('appointmentId'), form.get('medicines'), form.get('notes', ''))
        return _reply(prescription, 201)

    # ---------------- Patient ----------------
    @app.route('/api/patient')
    @login_required('patient')
    def patient_dashboard():
        patient = PatientController(g.state)
        return _reply({
            'document': patient.data,
            'appointments': patient.sorted_appointments(),
            'nextAppointment': patient.next_appointment(),
            'recentPrescriptions': patient.recent_prescriptions(),
            'outstanding': patient.outstanding_balance(),
            'stats': patient.stats(),
        })

    @app.route('/api/patient/doctors')
    @login_required('patient')
    def patient_doctors():
        return _reply({'doctors': PatientController(g.state).doctors_in_department(request.args.get('department'))})

    @app.route('/api/patient/appointments', methods=['POST'])
    @login_required('patient')
    def patient_book():
        form = _payload()
        appointment = PatientController(g.state).book_appointment(
            form.get('doctorId'), form.get('date'), form.get('time'), form.get('notes', ''))
        return _reply(appointment, 201)

    @app.route('/api/patient/appointments/<appointment_id>/cancel', methods=['POST'])
    @login_required('patient')
    def patient_cancel(appointment_id):
        return _reply(PatientController(g.state).cancel_appointment(appointment_id))

    @app.route('/api/patient/checklist/<item_id>', methods=['PUT'])
    @login_required('patient')
    def patient_checklist(item_id):
        completed = _payload().get('completed')
        if isinstance(completed, str):
            completed = completed.lower() in ('1', 'true', 'on', 'yes')
        return _reply(PatientController(g.state).set_checklist_item(item_id, completed))

    @app.route('/api/patient/messages/<message_id>/read', methods=['POST'])
    @login_required('patient')
    def patient_message_read(message_id):
        return _reply(PatientController(g.state).mark_message_read(message_id))

    # ---------------- Pharmacist ----------------
    @app.route('/api/pharmacist')
    @login_required('pharmacist')
    def pharmacist_dashboard():
        pharmacist = PharmacistController(g.state)
        inventory = [{**item, 'stockStatus': pharmacist.stock_status(item)} for item in pharmacist.data['inventory']]
        return _reply({
            'prescriptions': pharmacist.filter_prescriptions(request.args.get('status', 'all')),
            'inventory': inventory,
            'stats': pharmacist.stats(),
        })

    @app.route('/api/pharmacist/prescriptions/<prescription_id>/dispense', methods=['POST'])
    @login_required('pharmacist')
    def pharmacist_dispense(prescription_id):
        return _reply(PharmacistController(g.state).mark_dispensed(prescription_id))

    @app.route('/api/pharmacist/inventory', methods=['POST'])
    @login_required('pharmacist')
    def pharmacist_add_inventory():
        form = _payload()
        item = PharmacistController(g.state).add_inventory(
            form.get('medicineName'), form.get('stock'), form.get('lowStockThreshold'), form.get('unit', 'tablets'))
        return _reply(item, 201)

    @app.route('/api/pharmacist/inventory/<item_id>/restock', methods=['POST'])
    @login_required('pharmacist')
    def pharmacist_restock(item_id):
        return _reply(PharmacistController(g.state).restock(item_id, _payload().get('amount')))

    @app.route('/api/pharmacist/inventory/<item_id>', methods=['DELETE'])
    @login_required('pharmacist')
    def pharmacist_remove_inventory(item_id):
        return _reply(PharmacistController(g.state).remove_inventory(item_id))

    # ---------------- Staff ----------------
    @app.route('/api/staff')
    @login_required('staff')
    def staff_dashboard():
        staff = StaffController(g.state)
        return _reply({
            'document': staff.data,
            'visits': staff.sorted_visits(),
            'stats': staff.stats(),
        })

    @app.route('/api/staff/visits', methods=['POST'])
    @login_required('staff')
    def staff_check_in():
        form = _payload()
        visit = StaffController(g.state).check_in(
            form.get('name'), form.get('doctor'), form.get('time'),
            form.get('status') or 'waiting', form.get('notes', ''))
        return _reply(visit, 201)

    @app.route('/api/staff/visits/<visit_id>', methods=['PUT'])
    @login_required('staff')
    def staff_visit_status(visit_id):
        return _reply(StaffController(g.state).set_visit_status(visit_id, _payload().get('status')))

    @app.route('/api/staff/billing/<bill_id>/pay', methods=['POST'])
    @login_required('staff')
    def staff_bill_paid(bill_id):
        return _reply(StaffController(g.state).mark_bill_paid(bill_id))

    @app.route('/api/staff/billing/<bill_id>', methods=['DELETE'])
    @login_required('staff')
    def staff_remove_bill(bill_id):
        return _reply(StaffController(g.state).remove_bill(bill_id))

    return app


# ---------------- Run server ----------------
if __name__ == '__main__':
    settings = get_settings()
    configure_logging(settings)
    create_app(settings=settings).run(host=settings.host, port=settings.port, debug=settings.debug)

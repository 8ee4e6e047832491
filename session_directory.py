"""
Registered users and the single active session.

Both live in the same LocalStorage as the role documents, under
``{prefix}:users`` and ``{prefix}:session``. Passwords are stored and
compared in plaintext.
"""
import json
import logging
import re
import secrets
import string

from data_manager import DEFAULT_PREFIX
from defaults import ROLES, to_iso, utcnow
from exceptions import InvalidCredentials, UsernameTaken, ValidationError

logger = logging.getLogger(__name__)

LOGIN_PAGE = 'login.html'
INDEX_PAGE = 'index.html'
ROLE_TO_PAGE = {
    'patient': 'patient.html',
    'doctor': 'doctor.html',
    'admin': 'admin.html',
    'pharmacist': 'pharmacist.html',
    'staff': 'staff.html',
}

EMAIL_RE = re.compile(r'^\S+@\S+\.\S+$')
PATIENT_ID_ALPHABET = string.ascii_uppercase + string.digits


def home_page(role):
    return ROLE_TO_PAGE.get(role, INDEX_PAGE)


def generate_patient_id():
    return 'PAT-' + ''.join(secrets.choice(PATIENT_ID_ALPHABET) for _ in range(6))


# ------------------------------------------------------
# FORM VALIDATION
# ------------------------------------------------------
def _text(form, field):
    return str(form.get(field) or '').strip()


def validate_login(form):
    """Field -> message; an empty message means the field is fine."""
    errors = {'username': '', 'password': ''}
    if len(_text(form, 'username')) < 3:
        errors['username'] = 'Username must be at least 3 characters.'
    if len(_text(form, 'password')) < 6:
        errors['password'] = 'Password must be at least 6 characters.'
    return errors


def validate_signup(form):
    errors = {
        'role': '',
        'firstName': '',
        'lastName': '',
        'email': '',
        'username': '',
        'password': '',
    }
    if not form.get('role'):
        errors['role'] = 'Please choose a role.'
    elif form.get('role') not in ROLES:
        errors['role'] = 'Unknown role.'
    if len(_text(form, 'firstName')) < 2:
        errors['firstName'] = 'First name is required.'
    if len(_text(form, 'lastName')) < 2:
        errors['lastName'] = 'Last name is required.'
    if not EMAIL_RE.match(str(form.get('email') or '')):
        errors['email'] = 'Please enter a valid email address.'
    if len(_text(form, 'username')) < 3:
        errors['username'] = 'Username must be at least 3 characters.'
    if len(_text(form, 'password')) < 6:
        errors['password'] = 'Password must be at least 6 characters.'
    return errors


def has_errors(errors):
    return any(errors.values())


class SessionDirectory:
    """Shared user list plus the one active session."""

    def __init__(self, storage, prefix=DEFAULT_PREFIX):
        self.storage = storage
        self.users_key = f"{prefix}:users"
        self.session_key = f"{prefix}:session"

    # ------------------------------------------------------
    # USERS
    # ------------------------------------------------------
    def list_users(self):
        raw = self.storage.get_item(self.users_key)
        if not raw:
            return []
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Failed to parse stored users: %s", e)
            return []
        if not isinstance(parsed, list):
            logger.warning("Stored users are not a list (got %s). Ignoring them.", type(parsed).__name__)
            return []
        users = [u for u in parsed if isinstance(u, dict)]
        if len(users) != len(parsed):
            logger.warning("Dropped %d malformed entries from stored users", len(parsed) - len(users))
        return users

    def save_users(self, users):
        self.storage.set_item(self.users_key, json.dumps(users))

    def find_user(self, username):
        for user in self.list_users():
            if user.get('username') == username:
                return user
        return None

    def register_user(self, candidate):
        """Append a new user record; the username must not be in use yet."""
        username = str(candidate.get('username') or '').strip()
        users = self.list_users()
        if any(u.get('username') == username for u in users):
            raise UsernameTaken(username)

        role = candidate.get('role')
        user = {
            'username': username,
            'password': candidate.get('password'),
            'firstName': str(candidate.get('firstName') or '').strip(),
            'lastName': str(candidate.get('lastName') or '').strip(),
            'email': str(candidate.get('email') or '').strip(),
            'role': role,
            'patientId': generate_patient_id() if role == 'patient' else None,
            'createdAt': to_iso(utcnow()),
        }
        users.append(user)
        self.save_users(users)
        logger.info("Registered %s account %s", role, username)
        return user

    def authenticate(self, username, password):
        user = self.find_user(str(username or '').strip())
        if not user or user.get('password') != password:
            raise InvalidCredentials()
        return user

    def change_password(self, username, new_password, confirm_password):
        new_password = '' if new_password is None else str(new_password)
        confirm_password = '' if confirm_password is None else str(confirm_password)
        if new_password != confirm_password:
            raise ValidationError('Passwords do not match')
        if len(new_password) < 6:
            raise ValidationError('Password must be at least 6 characters')
        users = self.list_users()
        for user in users:
            if user.get('username') == username:
                user['password'] = new_password
                self.save_users(users)
                return user
        raise InvalidCredentials()

    # ------------------------------------------------------
    # SESSION
    # ------------------------------------------------------
    def create_session(self, user):
        session = {
            'username': user['username'],
            'role': user['role'],
            'firstName': user.get('firstName'),
            'lastName': user.get('lastName'),
            'email': user.get('email'),
            'patientId': user.get('patientId'),
            'createdAt': to_iso(utcnow()),
        }
        self.storage.set_item(self.session_key, json.dumps(session))
        logger.info("Session started for %s (%s)", session['username'], session['role'])
        return session

    def get_session(self):
        raw = self.storage.get_item(self.session_key)
        if not raw:
            return None
        try:
            session = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Failed to read session: %s", e)
            return None
        return session if isinstance(session, dict) else None

    def clear_session(self):
        self.storage.remove_item(self.session_key)

    def require_session(self, allowed_roles=(), redirect=None):
        """
        Guard for role pages; run it before reading any document.

        Returns the session, or None after handing the page to go to
        (login page, or the session role's home page) to ``redirect``.
        """
        session = self.get_session()
        if not session:
            if redirect:
                redirect(LOGIN_PAGE)
            return None
        if allowed_roles and session.get('role') not in allowed_roles:
            if redirect:
                redirect(home_page(session.get('role')))
            return None
        return session

import json
import logging
import re

import pytest

from exceptions import InvalidCredentials, UsernameTaken, ValidationError
from session_directory import (
    INDEX_PAGE,
    LOGIN_PAGE,
    generate_patient_id,
    has_errors,
    home_page,
    validate_login,
    validate_signup,
)


def candidate(**overrides):
    user = {
        'username': 'sonia',
        'password': 'secret123',
        'firstName': 'Sonia',
        'lastName': 'Kapoor',
        'email': 'sonia@example.com',
        'role': 'patient',
    }
    user.update(overrides)
    return user


def test_register_patient_gets_a_patient_id(directory):
    user = directory.register_user(candidate(username='  sonia '))

    assert user['username'] == 'sonia'
    assert re.fullmatch(r'PAT-[A-Z0-9]{6}', user['patientId'])
    assert user['createdAt'].endswith('Z')
    assert directory.find_user('sonia') == user


def test_register_other_roles_have_no_patient_id(directory):
    user = directory.register_user(candidate(username='drsen', role='doctor'))
    assert user['patientId'] is None


def test_duplicate_username_is_rejected_and_list_untouched(directory, storage):
    directory.register_user(candidate())
    before = storage.get_item('app:users')

    with pytest.raises(UsernameTaken) as excinfo:
        directory.register_user(candidate(username='sonia ', role='doctor'))

    assert str(excinfo.value) == 'This username is already taken.'
    assert storage.get_item('app:users') == before


def test_usernames_are_case_sensitive(directory):
    directory.register_user(candidate())
    directory.register_user(candidate(username='Sonia'))
    assert [u['username'] for u in directory.list_users()] == ['sonia', 'Sonia']


def test_wrong_password_and_unknown_user_look_the_same(directory):
    directory.register_user(candidate())

    with pytest.raises(InvalidCredentials) as wrong_password:
        directory.authenticate('sonia', 'nope-nope')
    with pytest.raises(InvalidCredentials) as unknown_user:
        directory.authenticate('ghost', 'secret123')

    assert str(wrong_password.value) == str(unknown_user.value) == 'Invalid username or password'


def test_authenticate_strips_username(directory):
    directory.register_user(candidate())
    assert directory.authenticate(' sonia ', 'secret123')['username'] == 'sonia'


def test_session_holds_no_password(directory, storage):
    user = directory.register_user(candidate())
    session = directory.create_session(user)

    assert 'password' not in session
    assert json.loads(storage.get_item('app:session')) == session
    assert directory.get_session() == session


def test_new_session_replaces_the_old_one(directory):
    directory.create_session(directory.register_user(candidate()))
    directory.create_session(directory.register_user(candidate(username='drsen', role='doctor')))
    assert directory.get_session()['username'] == 'drsen'


def test_clear_session(directory):
    directory.create_session(directory.register_user(candidate()))
    directory.clear_session()
    assert directory.get_session() is None


def test_corrupt_users_and_session_are_ignored(directory, storage, caplog):
    storage.set_item('app:users', 'nope')
    storage.set_item('app:session', '{')

    with caplog.at_level(logging.WARNING):
        assert directory.list_users() == []
        assert directory.get_session() is None
    assert 'users' in caplog.text


def test_non_list_users_value_is_ignored(directory, storage, caplog):
    storage.set_item('app:users', json.dumps({'sonia': {}}))
    with caplog.at_level(logging.WARNING):
        assert directory.list_users() == []
    assert 'not a list' in caplog.text


def test_malformed_user_entries_are_skipped(directory, storage, caplog):
    storage.set_item('app:users', json.dumps([1, 'x', {'username': 'amy', 'password': 'secret1', 'role': 'staff'}]))

    with caplog.at_level(logging.WARNING):
        assert [u['username'] for u in directory.list_users()] == ['amy']
    assert 'Dropped 2 malformed entries' in caplog.text

    assert directory.authenticate('amy', 'secret1')['role'] == 'staff'
    with pytest.raises(InvalidCredentials):
        directory.authenticate('ghost', 'secret1')
    directory.register_user(candidate())
    assert [u['username'] for u in directory.list_users()] == ['amy', 'sonia']


def test_require_session_without_session_redirects_to_login(directory):
    pages = []
    assert directory.require_session({'admin'}, redirect=pages.append) is None
    assert pages == [LOGIN_PAGE]


def test_require_session_with_wrong_role_redirects_home(directory):
    directory.create_session(directory.register_user(candidate(username='drsen', role='doctor')))
    pages = []
    assert directory.require_session({'admin'}, redirect=pages.append) is None
    assert pages == ['doctor.html']


def test_require_session_returns_matching_session(directory):
    directory.create_session(directory.register_user(candidate()))
    pages = []
    session = directory.require_session({'patient'}, redirect=pages.append)
    assert session['role'] == 'patient'
    assert pages == []


def test_require_session_with_no_roles_accepts_anyone(directory):
    directory.create_session(directory.register_user(candidate(username='amy', role='staff')))
    assert directory.require_session()['username'] == 'amy'


def test_require_session_without_callback(directory):
    assert directory.require_session({'admin'}) is None


def test_change_password(directory):
    directory.register_user(candidate())
    directory.change_password('sonia', 'newpass1', 'newpass1')

    assert directory.authenticate('sonia', 'newpass1')['username'] == 'sonia'
    with pytest.raises(InvalidCredentials):
        directory.authenticate('sonia', 'secret123')


@pytest.mark.parametrize('new, confirm', [('newpass1', 'newpass2'), ('short', 'short')])
def test_change_password_rejects_bad_input(directory, new, confirm):
    directory.register_user(candidate())
    with pytest.raises(ValidationError):
        directory.change_password('sonia', new, confirm)


def test_change_password_for_unknown_user(directory):
    with pytest.raises(InvalidCredentials):
        directory.change_password('ghost', 'newpass1', 'newpass1')


def test_change_password_accepts_non_string_values(directory):
    directory.register_user(candidate())
    with pytest.raises(ValidationError):
        directory.change_password('sonia', 12345, 12345)
    with pytest.raises(ValidationError):
        directory.change_password('sonia', None, None)

    directory.change_password('sonia', 1234567, '1234567')
    assert directory.authenticate('sonia', '1234567')['username'] == 'sonia'


def test_home_page():
    assert home_page('pharmacist') == 'pharmacist.html'
    assert home_page('janitor') == INDEX_PAGE
    assert home_page(None) == INDEX_PAGE


def test_generate_patient_id_format():
    assert all(re.fullmatch(r'PAT-[A-Z0-9]{6}', generate_patient_id()) for _ in range(50))


def test_validate_login():
    assert not has_errors(validate_login({'username': 'amy', 'password': 'secret1'}))
    errors = validate_login({'username': 'am', 'password': '123'})
    assert errors['username'] and errors['password']


def test_validate_signup():
    assert not has_errors(validate_signup(candidate()))

    errors = validate_signup(candidate(role='', firstName='S', email='not-an-email'))
    assert errors['role'] == 'Please choose a role.'
    assert errors['firstName']
    assert errors['email']
    assert errors['lastName'] == ''

    assert validate_signup(candidate(role='janitor'))['role'] == 'Unknown role.'

from datetime import date

import pytest

from validators import (
    ValidationError, RequestValidator, validate_password, validate_account_data,
    validate_notification_data, is_valid_uuid, format_validation_error
)
from leave_helpers import validate_leave_data, calculate_total_days

SCHOOL_ID = '0b7f8d3e-4c55-4d7a-9a43-2f1f5c3b9e10'


def test_password_rules():
    assert validate_password('Password1') == []
    assert validate_password('') == ['Password is required']

    errors = validate_password('short')
    assert 'Password must be at least 8 characters long' in errors
    assert 'Password must contain at least one uppercase letter' in errors
    assert 'Password must contain at least one number' in errors

    assert validate_password('Password1', require_special=True) == [
        'Password must contain at least one special character'
    ]


def test_email_is_trimmed_and_lowercased():
    assert RequestValidator.validate_email('  Jane.Doe@School.COM ') == 'jane.doe@school.com'
    with pytest.raises(ValidationError) as exc:
        RequestValidator.validate_email('not-an-email')
    assert format_validation_error(exc.value) == 'email: is not a valid email address'


def test_phone_strips_formatting():
    assert RequestValidator.validate_phone('+91 (987) 654-3210') == '+919876543210'
    assert RequestValidator.validate_phone('') is None
    with pytest.raises(ValidationError):
        RequestValidator.validate_phone('abc')


def test_date_and_time():
    assert RequestValidator.validate_date('2026-03-02') == date(2026, 3, 2)
    assert RequestValidator.validate_date(None, required=False) is None
    with pytest.raises(ValidationError):
        RequestValidator.validate_date('02/03/2026')

    assert RequestValidator.validate_time('09:05') == '09:05'
    with pytest.raises(ValidationError):
        RequestValidator.validate_time('25:00')


def test_uuid_check():
    assert is_valid_uuid(SCHOOL_ID)
    assert not is_valid_uuid('temp-1')
    assert not is_valid_uuid(None)


def test_account_data_for_student():
    validated = validate_account_data({
        'role': 'student',
        'email': 'Kid@School.com',
        'full_name': 'Kid Student',
        'password': 'Password1',
        'school_id': SCHOOL_ID,
    })
    assert validated['email'] == 'kid@school.com'
    assert validated['grade'] == 'Not Specified'
    assert validated['school_id'] == SCHOOL_ID


def test_account_data_rejects_bad_input():
    base = {'email': 'a@school.com', 'full_name': 'Some One', 'password': 'Password1'}

    with pytest.raises(ValidationError) as exc:
        validate_account_data({**base, 'role': 'principal'})
    assert exc.value.field == 'role'

    with pytest.raises(ValidationError) as exc:
        validate_account_data({**base, 'role': 'teacher'})
    assert exc.value.field == 'school_assignments'

    with pytest.raises(ValidationError) as exc:
        validate_account_data({**base, 'role': 'school_admin', 'school_id': 'nope'})
    assert exc.value.field == 'school_id'

    with pytest.raises(ValidationError) as exc:
        validate_account_data({**base, 'role': 'admin', 'password': 'weak'})
    assert exc.value.field == 'password'


def test_teacher_assignments_are_cleaned():
    validated = validate_account_data({
        'role': 'teacher',
        'email': 't@school.com',
        'full_name': 'Teach Er',
        'password': 'Password1',
        'school_assignments': [{'school_id': SCHOOL_ID, 'grades_assigned': ['Grade 5', ''], 'subjects': None}],
    })
    assert validated['school_assignments'] == [
        {'school_id': SCHOOL_ID, 'grades_assigned': ['Grade 5'], 'subjects': []}
    ]
    assert validated['experience_years'] == 0


def test_experience_years_must_be_a_whole_number():
    teacher = {
        'role': 'teacher',
        'email': 't@school.com',
        'full_name': 'Teach Er',
        'password': 'Password1',
        'school_assignments': [{'school_id': SCHOOL_ID}],
    }
    assert validate_account_data({**teacher, 'experience_years': '7'})['experience_years'] == 7

    with pytest.raises(ValidationError) as exc:
        validate_account_data({**teacher, 'experience_years': 'lots'})
    assert format_validation_error(exc.value) == 'experience_years: must be a whole number'

    with pytest.raises(ValidationError) as exc:
        validate_account_data({**teacher, 'experience_years': -2})
    assert exc.value.message == 'must be at least 0'


def test_validate_int():
    assert RequestValidator.validate_int(None, 'maxUses') is None
    assert RequestValidator.validate_int('12', 'maxUses', minimum=1) == 12

    with pytest.raises(ValidationError):
        RequestValidator.validate_int(True, 'maxUses')
    with pytest.raises(ValidationError):
        RequestValidator.validate_int(0, 'maxUses', minimum=1)


def test_notification_data_limits():
    validated = validate_notification_data({'title': ' Exam ', 'message': 'Tomorrow'})
    assert validated == {'title': 'Exam', 'message': 'Tomorrow', 'type': 'info', 'priority': 'normal'}

    with pytest.raises(ValidationError):
        validate_notification_data({'title': 'x', 'message': 'm' * 1001})


def test_leave_days_are_inclusive():
    assert calculate_total_days(date(2026, 3, 2), date(2026, 3, 4)) == 3
    assert calculate_total_days(date(2026, 3, 2), date(2026, 3, 2)) == 1

    validated = validate_leave_data({
        'school_id': SCHOOL_ID,
        'start_date': '2026-03-02',
        'end_date': '2026-03-04',
        'reason': 'Family wedding',
    })
    assert validated['total_days'] == 3
    assert validated['leave_type'] == 'Personal'


def test_leave_end_before_start():
    with pytest.raises(ValidationError) as exc:
        validate_leave_data({
            'school_id': SCHOOL_ID,
            'start_date': '2026-03-04',
            'end_date': '2026-03-02',
            'reason': 'Oops',
        })
    assert exc.value.message == 'End date must be after start date'

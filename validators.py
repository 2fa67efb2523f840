"""
Request Validation Utilities
Validates account, course, leave, attendance and notification payloads
"""

import re
import uuid
from datetime import datetime

from models import ACCOUNT_ROLES, ROLE_STUDENT, ROLE_TEACHER, ROLE_SCHOOL_ADMIN


EMAIL_PATTERN = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
PHONE_PATTERN = r'^\+?[1-9]\d{1,14}$'
TIME_PATTERN = r'^([01]\d|2[0-3]):[0-5]\d(:[0-5]\d)?$'
SPECIAL_CHAR_PATTERN = r'[!@#$%^&*()_+\-=\[\]{};\':"\\|,.<>/?]'

DIFFICULTY_LEVELS = ('Beginner', 'Intermediate', 'Advanced')
MAX_REPLY_LENGTH = 2000
MAX_REASON_LENGTH = 2000
MAX_MESSAGE_LENGTH = 1000
MAX_TITLE_LENGTH = 255


class ValidationError(Exception):
    """Custom exception for validation errors"""
    def __init__(self, field, message):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


def format_validation_error(error):
    """
    Format ValidationError for the JSON error body
    Args:
        error: ValidationError instance
    Returns:
        Formatted error message string
    """
    return f"{error.field}: {error.message}"


def is_valid_uuid(value):
    if not isinstance(value, str):
        return False
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


def validate_password(password, require_special=False):
    """
    Check password strength
    Args:
        password: Candidate password
        require_special: Whether a special character is mandatory
    Returns:
        List of error messages (empty when the password is acceptable)
    """
    errors = []
    if not password:
        return ['Password is required']

    if len(password) < 8:
        errors.append('Password must be at least 8 characters long')
    if not re.search(r'[A-Z]', password):
        errors.append('Password must contain at least one uppercase letter')
    if not re.search(r'[a-z]', password):
        errors.append('Password must contain at least one lowercase letter')
    if not re.search(r'[0-9]', password):
        errors.append('Password must contain at least one number')
    if require_special and not re.search(SPECIAL_CHAR_PATTERN, password):
        errors.append('Password must contain at least one special character')
    return errors


class RequestValidator:
    """Field-level validators shared by the JSON endpoints"""

    @staticmethod
    def validate_email(email, field_name="email"):
        """
        Validate email format
        Returns:
            Cleaned email (lowercase)
        Raises:
            ValidationError if invalid
        """
        if not email or not isinstance(email, str):
            raise ValidationError(field_name, "is required")

        email = email.strip().lower()
        if not re.match(EMAIL_PATTERN, email):
            raise ValidationError(field_name, "is not a valid email address")
        return email

    @staticmethod
    def validate_phone(phone, field_name="phone"):
        """Optional E.164-style phone number; formatting characters are stripped"""
        if not phone:
            return None

        cleaned = re.sub(r'[\s\-\(\)]', '', str(phone).strip())
        if not re.match(PHONE_PATTERN, cleaned):
            raise ValidationError(field_name, "is not a valid phone number")
        return cleaned

    @staticmethod
    def validate_date(value, field_name="date", required=True):
        """
        Validate a YYYY-MM-DD date
        Returns:
            date object (or None when optional and missing)
        Raises:
            ValidationError if invalid
        """
        if not value:
            if required:
                raise ValidationError(field_name, "is required")
            return None
        try:
            return datetime.strptime(str(value).strip(), '%Y-%m-%d').date()
        except ValueError:
            raise ValidationError(field_name, "must be in YYYY-MM-DD format")

    @staticmethod
    def validate_time(value, field_name="time"):
        if not value:
            return None
        value = str(value).strip()
        if not re.match(TIME_PATTERN, value):
            raise ValidationError(field_name, "must be in HH:MM or HH:MM:SS format")
        return value

    @staticmethod
    def validate_uuid(value, field_name="id"):
        if not value:
            raise ValidationError(field_name, "is required")
        if not is_valid_uuid(value):
            raise ValidationError(field_name, "must be a valid UUID")
        return value

    @staticmethod
    def validate_text(value, field_name, min_length=1, max_length=255):
        if value is None or not isinstance(value, str) or not value.strip():
            raise ValidationError(field_name, "is required")

        cleaned = value.strip()
        if len(cleaned) < min_length:
            raise ValidationError(field_name, f"must be at least {min_length} characters")
        if len(cleaned) > max_length:
            raise ValidationError(field_name, f"must not exceed {max_length} characters")
        return cleaned

    @staticmethod
    def validate_difficulty(value):
        if not value:
            return None
        if value not in DIFFICULTY_LEVELS:
            raise ValidationError("difficulty_level", f"must be one of {', '.join(DIFFICULTY_LEVELS)}")
        return value

    @staticmethod
    def validate_duration_weeks(value):
        if value in (None, ''):
            return None
        try:
            weeks = int(value)
        except (TypeError, ValueError):
            raise ValidationError("duration_weeks", "must be a whole number")
        if weeks < 1 or weeks > 104:
            raise ValidationError("duration_weeks", "must be between 1 and 104")
        return weeks

    @staticmethod
    def validate_int(value, field_name, minimum=None):
        """Optional whole number; None when missing"""
        if value in (None, ''):
            return None
        if isinstance(value, bool):
            raise ValidationError(field_name, "must be a whole number")
        try:
            number = int(value)
        except (TypeError, ValueError):
            raise ValidationError(field_name, "must be a whole number")
        if minimum is not None and number < minimum:
            raise ValidationError(field_name, f"must be at least {minimum}")
        return number


def validate_account_data(data):
    """
    Validate an account creation payload
    Args:
        data: Request JSON
    Returns:
        Dictionary of validated and cleaned data
    Raises:
        ValidationError on first validation failure
    """
    validated = {}

    role = data.get('role')
    if role not in ACCOUNT_ROLES:
        raise ValidationError("role", f"must be one of: {', '.join(ACCOUNT_ROLES)}")
    validated['role'] = role

    validated['email'] = RequestValidator.validate_email(data.get('email'))
    validated['full_name'] = RequestValidator.validate_text(data.get('full_name'), 'full_name', 2, 200)

    password_errors = validate_password(data.get('password'))
    if password_errors:
        raise ValidationError("password", '; '.join(password_errors))
    validated['password'] = data.get('password')

    validated['phone'] = RequestValidator.validate_phone(data.get('phone'))
    validated['address'] = (data.get('address') or '').strip() or None

    if role in (ROLE_STUDENT, ROLE_SCHOOL_ADMIN):
        validated['school_id'] = RequestValidator.validate_uuid(data.get('school_id'), 'school_id')

    if role == ROLE_STUDENT:
        validated['grade'] = (data.get('grade') or '').strip() or 'Not Specified'
        validated['parent_name'] = (data.get('parent_name') or '').strip() or None
        validated['parent_phone'] = RequestValidator.validate_phone(data.get('parent_phone'), 'parent_phone')

    if role == ROLE_TEACHER:
        assignments = data.get('school_assignments')
        if not isinstance(assignments, list) or not assignments:
            raise ValidationError("school_assignments", "array is required for teachers")
        cleaned = []
        for index, assignment in enumerate(assignments):
            if not isinstance(assignment, dict):
                raise ValidationError(f"school_assignments.{index}", "must be an object")
            cleaned.append({
                'school_id': RequestValidator.validate_uuid(assignment.get('school_id'), f"school_assignments.{index}.school_id"),
                'grades_assigned': [g for g in (assignment.get('grades_assigned') or []) if g],
                'subjects': [s for s in (assignment.get('subjects') or []) if s],
            })
        validated['school_assignments'] = cleaned
        validated['qualification'] = data.get('qualification')
        validated['experience_years'] = RequestValidator.validate_int(
            data.get('experience_years'), 'experience_years', minimum=0) or 0
        validated['specialization'] = data.get('specialization')

    return validated


def validate_notification_data(data):
    """Title and message of an outgoing notification"""
    return {
        'title': RequestValidator.validate_text(data.get('title'), 'title', 1, MAX_TITLE_LENGTH),
        'message': RequestValidator.validate_text(data.get('message'), 'message', 1, MAX_MESSAGE_LENGTH),
        'type': data.get('type') or 'info',
        'priority': data.get('priority') or 'normal',
    }

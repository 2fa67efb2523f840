"""
Authorization Helper Functions
Role guards and per-school access checks used by the API blueprints
"""

from functools import wraps
from flask import jsonify, request
from flask_login import current_user
import logging

from models import ADMIN_ROLES, ROLE_SUPER_ADMIN, ROLE_SCHOOL_ADMIN, SchoolAdmin
from validators import ValidationError, format_validation_error

logger = logging.getLogger(__name__)


def require_role(*roles):
    """
    Decorator to require an authenticated user with one of the given roles.
    super_admin passes every check that admits admin.
    """
    allowed = set(roles)
    if 'admin' in allowed:
        allowed.add(ROLE_SUPER_ADMIN)

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not current_user.is_authenticated:
                return jsonify({'error': 'Unauthorized', 'message': 'Authentication required'}), 401

            if not current_user.is_active:
                return jsonify({'error': 'Unauthorized', 'message': 'Account is inactive'}), 401

            if allowed and current_user.role not in allowed:
                logger.warning(f"Forbidden: user {current_user.id} ({current_user.role}) -> {request.path}")
                return jsonify({'error': 'Forbidden', 'message': 'You do not have permission to access this resource'}), 403

            return f(*args, **kwargs)
        return decorated_function
    return decorator


def get_json_body():
    """Request JSON as a dict; malformed or missing bodies become {}"""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def validation_error_response(error: ValidationError):
    return jsonify({'error': 'Validation failed', 'details': format_validation_error(error)}), 400


def is_admin_user(user=None):
    user = user or current_user
    return bool(user and user.is_authenticated and user.role in ADMIN_ROLES)


def teacher_has_school_access(session, teacher_user_id, school_id):
    """Teachers may act for the schools they are assigned to"""
    from teacher_models import TeacherSchool

    if not school_id:
        return False
    return session.query(TeacherSchool).filter_by(
        teacher_id=teacher_user_id,
        school_id=school_id
    ).first() is not None


def get_teacher_school_ids(session, teacher_user_id):
    from teacher_models import TeacherSchool

    rows = session.query(TeacherSchool.school_id).filter_by(teacher_id=teacher_user_id).all()
    return [r[0] for r in rows]


def get_admin_school_id(session, user=None):
    """
    Resolve the school managed by a school admin

    Args:
        session: Database session
        user: User (defaults to current_user)

    Returns:
        str or None: school id from the profile, else from school_admins
    """
    user = user or current_user
    if user.role != ROLE_SCHOOL_ADMIN:
        return None
    if user.school_id:
        return user.school_id

    link = session.query(SchoolAdmin).filter_by(user_id=user.id, is_active=True).first()
    return link.school_id if link else None


def get_student_enrollment(session, student_user_id):
    """Active school enrolment of a student (first one when several exist)"""
    from student_models import StudentSchool

    return session.query(StudentSchool).filter_by(
        student_id=student_user_id,
        is_active=True
    ).order_by(StudentSchool.enrolled_at).first()


def mask_email(email):
    if not email or '@' not in email:
        return '***'
    local, domain = email.split('@', 1)
    return f"{local[:3]}***@{domain}"

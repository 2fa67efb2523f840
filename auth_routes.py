"""
Authentication Routes
CSRF token, session login/logout, profile, password change, password reset
requests and joining-code registration
"""

from flask import Blueprint, jsonify
from flask_login import login_user, logout_user, current_user
from flask_wtf.csrf import generate_csrf
import logging

from db_single import get_session
from models import User
from extensions import limiter, RateLimitPresets
from auth_helpers import require_role, get_json_body, validation_error_response, mask_email
from validators import ValidationError, RequestValidator, validate_password
from cache_helpers import invalidate

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/api')


@auth_bp.route('/csrf-token', methods=['GET'])
def csrf_token():
    return jsonify({'csrf_token': generate_csrf()})


@auth_bp.route('/auth/login', methods=['POST'])
@limiter.limit(RateLimitPresets.AUTH)
def login():
    """Session login with email and password"""
    data = get_json_body()
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''

    if not email or not password:
        return jsonify({'error': 'Email and password are required'}), 400

    session_db = get_session()
    try:
        user = session_db.query(User).filter(User.email == email).first()
        if not user or not user.is_active or not user.check_password(password):
            logger.warning(f"Failed login for {mask_email(email)}")
            return jsonify({'error': 'Invalid email or password'}), 401

        from account_helpers import stamp_login
        stamp_login(user)
        session_db.commit()

        login_user(user)
        logger.info(f"User {user.id} ({user.role}) logged in")
        return jsonify({
            'success': True,
            'user': user.to_dict(),
            'force_password_change': bool(user.force_password_change),
        })
    except Exception as e:
        session_db.rollback()
        logger.error(f"Login error: {e}")
        return jsonify({'error': 'Login failed'}), 500
    finally:
        session_db.close()


@auth_bp.route('/auth/logout', methods=['POST'])
def logout():
    if current_user.is_authenticated:
        logger.info(f"User {current_user.id} logged out")
    logout_user()
    return jsonify({'success': True, 'message': 'Logged out successfully'})


@auth_bp.route('/auth/me', methods=['GET'])
@require_role()
def me():
    """Profile and role of the logged-in user"""
    session_db = get_session()
    try:
        user = session_db.get(User, current_user.id)
        if not user:
            return jsonify({'error': 'User not found'}), 404

        data = user.to_dict()
        if user.role == 'teacher':
            from auth_helpers import get_teacher_school_ids
            data['school_ids'] = get_teacher_school_ids(session_db, user.id)
        elif user.role == 'student':
            from auth_helpers import get_student_enrollment
            enrolment = get_student_enrollment(session_db, user.id)
            data['school_id'] = enrolment.school_id if enrolment else user.school_id
            data['grade'] = enrolment.grade if enrolment else None
        elif user.role == 'school_admin':
            from auth_helpers import get_admin_school_id
            data['school_id'] = get_admin_school_id(session_db, user)

        return jsonify({'success': True, 'user': data, 'role': user.role})
    except Exception as e:
        logger.error(f"Error loading profile for {current_user.id}: {e}")
        return jsonify({'error': 'Failed to load profile'}), 500
    finally:
        session_db.close()


@auth_bp.route('/auth/change-password', methods=['POST'])
@require_role()
@limiter.limit(RateLimitPresets.AUTH)
def change_password():
    data = get_json_body()
    current_password = data.get('current_password') or ''
    new_password = data.get('new_password') or ''

    errors = validate_password(new_password)
    if errors:
        return jsonify({'error': 'Validation failed', 'details': '; '.join(errors)}), 400

    session_db = get_session()
    try:
        user = session_db.get(User, current_user.id)
        if not user or not user.check_password(current_password):
            return jsonify({'error': 'Current password is incorrect'}), 400
        if current_password == new_password:
            return jsonify({'error': 'New password must be different from the current password'}), 400

        user.set_password(new_password)
        user.force_password_change = False
        session_db.commit()

        logger.info(f"User {user.id} changed password")
        return jsonify({'success': True, 'message': 'Password changed successfully'})
    except Exception as e:
        session_db.rollback()
        logger.error(f"Change password error for {current_user.id}: {e}")
        return jsonify({'error': 'Failed to change password'}), 500
    finally:
        session_db.close()


@auth_bp.route('/auth/password-reset-request', methods=['POST'])
@limiter.limit(RateLimitPresets.AUTH)
def password_reset_request():
    """Ask an administrator to reset a forgotten password"""
    from password_reset_handler import submit_reset_request

    data = get_json_body()
    try:
        email = RequestValidator.validate_email(data.get('email')).lower()
    except ValidationError as e:
        return validation_error_response(e)

    session_db = get_session()
    try:
        message, _ = submit_reset_request(session_db, email)
        session_db.commit()
        return jsonify({'success': True, 'message': message})
    except Exception as e:
        session_db.rollback()
        logger.error(f"Password reset request error for {mask_email(email)}: {e}")
        return jsonify({'error': 'Failed to submit password reset request'}), 500
    finally:
        session_db.close()


@auth_bp.route('/validate-joining-code', methods=['POST'])
@limiter.limit(RateLimitPresets.WRITE)
def validate_joining_code():
    """
    Check a joining code, or register a student with it when studentData is sent.
    Registration creates the user, the student record and the school enrolment
    and counts the code use, all in one transaction.
    """
    from joining_code_helpers import check_join_code, record_code_use
    from account_helpers import email_exists, create_student_rows

    data = get_json_body()
    session_db = get_session()
    try:
        join_code, school, message = check_join_code(session_db, data.get('code'))
        if not join_code:
            return jsonify({'is_valid': False, 'message': message}), 400

        student_data = data.get('studentData')
        if not student_data:
            return jsonify({
                'is_valid': True,
                'school_id': school.id,
                'school_name': school.name,
                'grade': join_code.grade,
                'expires_at': join_code.expires_at.isoformat() if join_code.expires_at else None,
                'message': message,
            })

        try:
            full_name = RequestValidator.validate_text(student_data.get('full_name'), 'full_name', 2, 200)
            email = RequestValidator.validate_email(student_data.get('email')).lower()
        except ValidationError as e:
            return validation_error_response(e)

        password_errors = validate_password(student_data.get('password'))
        if password_errors:
            return jsonify({'error': 'Validation failed', 'details': '; '.join(password_errors)}), 400
        if email_exists(session_db, email):
            return jsonify({'error': f'Email {email} already exists'}), 400

        user = User(email=email, full_name=full_name, role='student', school_id=school.id, is_active=True)
        user.set_password(student_data['password'])
        session_db.add(user)
        session_db.flush()

        create_student_rows(session_db, user, school.id, join_code.grade, joining_code=join_code.code)
        record_code_use(join_code)
        session_db.commit()
        invalidate('schools:')
        invalidate('admin:stats')

        logger.info(f"Student {user.id} registered with joining code for school {school.id}")
        return jsonify({
            'success': True,
            'is_valid': True,
            'message': 'Registration successful',
            'user_id': user.id,
            'school_id': school.id,
            'school_name': school.name,
            'grade': join_code.grade,
        }), 201
    except Exception as e:
        session_db.rollback()
        logger.error(f"Joining code validation error: {e}")
        return jsonify({'error': 'Failed to validate joining code'}), 500
    finally:
        session_db.close()

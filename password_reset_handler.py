"""
Password Reset Handler
Request intake and admin review of password reset requests
"""

from datetime import datetime
import secrets
import logging

from models import User, PasswordResetRequest, RESET_STATUSES

logger = logging.getLogger(__name__)

GENERIC_RESET_MESSAGE = 'If an account exists with this email, a password reset request has been submitted for approval.'
PENDING_RESET_MESSAGE = 'A password reset request is already pending. Please wait for approval.'


def generate_temp_password():
    """'TempPass' followed by 4 random digits"""
    return f"TempPass{secrets.randbelow(10000):04d}"


def submit_reset_request(session, email):
    """
    Record a reset request for the account with this email and notify the
    admins and the school admins of the user's school.

    Unknown emails get the same generic reply so accounts cannot be enumerated.

    Returns:
        tuple: (message, PasswordResetRequest or None)
    """
    from notification_helpers import notify_users, get_admin_user_ids, get_school_admin_user_ids
    from auth_helpers import mask_email

    user = session.query(User).filter(User.email == email).first()
    if not user:
        logger.info(f"Password reset requested for unknown email {mask_email(email)}")
        return GENERIC_RESET_MESSAGE, None

    pending = session.query(PasswordResetRequest).filter_by(user_id=user.id, status='pending').first()
    if pending:
        return PENDING_RESET_MESSAGE, pending

    reset_request = PasswordResetRequest(
        user_id=user.id,
        email=user.email,
        user_role=user.role,
        school_id=user.school_id,
        status='pending',
    )
    session.add(reset_request)
    session.flush()

    message = f"{user.full_name} ({user.role}) has requested a password reset."
    recipients = get_admin_user_ids(session) + get_school_admin_user_ids(session, user.school_id)
    notify_users(
        session, [r for r in recipients if r != user.id],
        'Password Reset Request', message,
        notification_type='password_reset', priority='high', school_id=user.school_id,
    )
    logger.info(f"Password reset request {reset_request.id} created for {mask_email(user.email)}")
    return GENERIC_RESET_MESSAGE, reset_request


def review_reset_request(session, reset_request, status, approver_id=None, notes=None):
    """
    Apply an admin decision to a reset request (caller commits)

    Approving issues a temporary password, forces a password change, marks
    the request completed and tells the user in-app (and by email when
    configured). Rejecting notifies the user.

    Returns:
        tuple: (success: bool, message: str, temp_password or None)
    """
    from notification_helpers import notify_users

    if status not in RESET_STATUSES:
        return False, f"Invalid status. Must be one of: {', '.join(RESET_STATUSES)}", None

    user = session.query(User).filter_by(id=reset_request.user_id).first()
    if not user:
        return False, 'User for this request no longer exists', None

    if notes is not None:
        reset_request.notes = notes

    if status == 'approved':
        if not approver_id:
            return False, 'approved_by is required to approve a request', None

        temp_password = generate_temp_password()
        user.set_password(temp_password)
        user.force_password_change = True

        reset_request.status = 'completed'
        reset_request.approved_by = approver_id
        reset_request.approved_at = datetime.utcnow()
        reset_request.notes = f"{notes + chr(10) if notes else ''}Temporary password: {temp_password}"

        notify_users(
            session, [user.id], 'Password Reset Approved',
            f"Your password has been reset. Temporary password: {temp_password}. "
            f"You will be asked to change it after logging in.",
            notification_type='password_reset', priority='high',
            sender_id=approver_id, school_id=user.school_id,
        )

        from notification_email import is_email_configured, send_temp_password_email
        if is_email_configured():
            send_temp_password_email(user.email, user.full_name, temp_password)

        logger.info(f"Password reset request {reset_request.id} approved")
        return True, 'Password reset approved. Temporary password issued.', temp_password

    reset_request.status = status
    if status == 'rejected':
        reset_request.approved_by = approver_id
        reset_request.approved_at = datetime.utcnow()
        notify_users(
            session, [user.id], 'Password Reset Rejected',
            f"Your password reset request was rejected.{' Notes: ' + notes if notes else ''}",
            notification_type='password_reset', sender_id=approver_id, school_id=user.school_id,
        )

    logger.info(f"Password reset request {reset_request.id} set to {status}")
    return True, f"Request marked as {status}", None


def serialize_reset_requests(session, requests):
    from models import School

    user_ids = {r.user_id for r in requests}
    school_ids = {r.school_id for r in requests if r.school_id}
    names = dict(session.query(User.id, User.full_name).filter(User.id.in_(user_ids)).all()) if user_ids else {}
    schools = dict(session.query(School.id, School.name).filter(School.id.in_(school_ids)).all()) if school_ids else {}

    result = []
    for r in requests:
        item = r.to_dict()
        item['full_name'] = names.get(r.user_id)
        item['school_name'] = schools.get(r.school_id)
        result.append(item)
    return result

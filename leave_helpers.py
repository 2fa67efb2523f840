"""
Leave Management Helper Functions
"""

from datetime import datetime
import logging

from validators import RequestValidator, ValidationError, MAX_REASON_LENGTH

logger = logging.getLogger(__name__)

LEAVE_TYPES = ('Personal', 'Sick', 'Casual', 'Emergency', 'Maternity', 'Paternity', 'Other')


def calculate_total_days(start_date, end_date):
    """
    Inclusive number of days covered by a leave

    Returns:
        int: (end - start).days + 1
    """
    return (end_date - start_date).days + 1


def validate_leave_data(data):
    """
    Validate a leave application payload

    Args:
        data: Request JSON

    Returns:
        Dictionary of validated and cleaned data

    Raises:
        ValidationError on first validation failure
    """
    school_id = RequestValidator.validate_uuid(data.get('school_id'), 'school_id')
    start_date = RequestValidator.validate_date(data.get('start_date'), 'start_date')
    end_date = RequestValidator.validate_date(data.get('end_date'), 'end_date')
    reason = RequestValidator.validate_text(data.get('reason'), 'reason', 1, MAX_REASON_LENGTH)

    total_days = calculate_total_days(start_date, end_date)
    if total_days <= 0:
        raise ValidationError("end_date", "End date must be after start date")

    return {
        'school_id': school_id,
        'start_date': start_date,
        'end_date': end_date,
        'leave_type': (data.get('leave_type') or 'Personal').strip() or 'Personal',
        'reason': reason,
        'total_days': total_days,
        'substitute_required': bool(data.get('substitute_required', False)),
    }


def create_leave(session, teacher_id, validated):
    """Insert a Pending leave application"""
    from leave_models import TeacherLeave, LeaveStatusEnum

    leave = TeacherLeave(
        teacher_id=teacher_id,
        status=LeaveStatusEnum.PENDING,
        **validated
    )
    session.add(leave)
    session.flush()
    logger.info(f"Leave {leave.id} created for teacher {teacher_id}: {leave.total_days} day(s)")
    return leave


def approved_leave_remarks(leave):
    return f"Approved leave: {leave.leave_type} - {leave.reason}"


def review_leave(session, leave, action, reviewer_id, notes=None):
    """
    Approve or reject a leave application

    On approval every date in the leave range is marked 'Leave-Approved' in
    attendance for the leave's school.

    Args:
        session: Database session (caller commits)
        leave: TeacherLeave
        action: 'approve' or 'reject'
        reviewer_id: User id of the reviewing school admin
        notes: Optional remarks stored in admin_remarks

    Returns:
        tuple: (success: bool, message: str)
    """
    from leave_models import LeaveStatusEnum
    from attendance_helpers import mark_leave_days

    if action not in ('approve', 'reject'):
        return False, "Action must be 'approve' or 'reject'"

    now = datetime.utcnow()
    leave.reviewed_by = reviewer_id
    leave.reviewed_at = now
    if notes is not None:
        leave.admin_remarks = notes

    if action == 'approve':
        leave.status = LeaveStatusEnum.APPROVED
        leave.approved_by = reviewer_id
        leave.approved_at = now
        marked = mark_leave_days(
            session, leave.teacher_id, leave.school_id,
            leave.start_date, leave.end_date, approved_leave_remarks(leave)
        )
        logger.info(f"Leave {leave.id} approved; {marked} attendance day(s) marked")
        return True, "Leave approved successfully"

    leave.status = LeaveStatusEnum.REJECTED
    leave.approved_by = None
    leave.approved_at = None
    session.flush()
    logger.info(f"Leave {leave.id} rejected")
    return True, "Leave rejected successfully"


def serialize_leaves(session, leaves):
    """Leave dicts with the teacher's name and the school's name"""
    from models import User, School

    user_ids = {l.teacher_id for l in leaves}
    school_ids = {l.school_id for l in leaves}
    names = dict(session.query(User.id, User.full_name).filter(User.id.in_(user_ids)).all()) if user_ids else {}
    schools = dict(session.query(School.id, School.name).filter(School.id.in_(school_ids)).all()) if school_ids else {}

    result = []
    for leave in leaves:
        item = leave.to_dict()
        item['teacher_name'] = names.get(leave.teacher_id)
        item['school_name'] = schools.get(leave.school_id)
        result.append(item)
    return result

"""
Helper functions for Staff Attendance
Upserts and listings shared by the teacher, school admin and admin portals
"""

from models import Attendance, User
from sqlalchemy import func
from datetime import date, datetime, timedelta

ATTENDANCE_STATUSES = ('Present', 'Absent', 'Late', 'Half-Day', 'Leave-Approved')
LEAVE_APPROVED_STATUS = 'Leave-Approved'


def calculate_attendance_stats(records):
    """
    Summarize a list of attendance rows

    Args:
        records: list of Attendance objects

    Returns:
        dict: counts per status and the present percentage
    """
    if not records:
        return {
            'total_days': 0,
            'present_count': 0,
            'late_count': 0,
            'half_day_count': 0,
            'absent_count': 0,
            'leave_count': 0,
            'percentage': 0.0
        }

    present = sum(1 for r in records if r.status == 'Present')
    late = sum(1 for r in records if r.status == 'Late')
    half_day = sum(1 for r in records if r.status == 'Half-Day')
    absent = sum(1 for r in records if r.status == 'Absent')
    on_leave = sum(1 for r in records if r.status == LEAVE_APPROVED_STATUS)

    # Late counts as present, half day as half
    present_days = present + late + (half_day * 0.5)
    percentage = present_days / len(records) * 100

    return {
        'total_days': len(records),
        'present_count': present,
        'late_count': late,
        'half_day_count': half_day,
        'absent_count': absent,
        'leave_count': on_leave,
        'percentage': round(percentage, 2)
    }


def upsert_attendance(db_session, user_id, school_id, attendance_date,
                      status, check_in=None, check_out=None, remarks=None):
    """
    Mark or update attendance for one user, school and date

    Returns:
        tuple: (Attendance, created)
    """
    record = db_session.query(Attendance).filter_by(
        user_id=user_id,
        school_id=school_id,
        date=attendance_date
    ).first()

    created = record is None
    if created:
        record = Attendance(user_id=user_id, school_id=school_id, date=attendance_date)
        db_session.add(record)

    record.status = status
    if check_in is not None:
        record.check_in_time = check_in
    if check_out is not None:
        record.check_out_time = check_out
    if remarks is not None:
        record.remarks = remarks
    record.updated_at = datetime.utcnow()

    db_session.flush()
    return record, created


def mark_leave_days(db_session, user_id, school_id, start_date, end_date, remarks):
    """Mark every date from start_date to end_date (inclusive) as approved leave"""
    marked = 0
    current = start_date
    while current <= end_date:
        upsert_attendance(db_session, user_id, school_id, current, LEAVE_APPROVED_STATUS, remarks=remarks)
        marked += 1
        current += timedelta(days=1)
    return marked


def query_attendance(db_session, school_ids=None, user_id=None, start_date=None, end_date=None):
    """Attendance rows joined with the user's name, newest date first"""
    query = db_session.query(Attendance, User.full_name, User.email).join(
        User, User.id == Attendance.user_id
    )
    if school_ids is not None:
        query = query.filter(Attendance.school_id.in_(school_ids))
    if user_id:
        query = query.filter(Attendance.user_id == user_id)
    if start_date:
        query = query.filter(Attendance.date >= start_date)
    if end_date:
        query = query.filter(Attendance.date <= end_date)
    return query.order_by(Attendance.date.desc(), User.full_name)


def serialize_attendance_rows(rows):
    result = []
    for record, full_name, email in rows:
        item = record.to_dict()
        item['teacher_name'] = full_name
        item['teacher_email'] = email
        result.append(item)
    return result


def get_today_attendance(db_session, user_id, school_id=None):
    query = db_session.query(Attendance).filter(
        Attendance.user_id == user_id,
        Attendance.date == date.today()
    )
    if school_id:
        query = query.filter(Attendance.school_id == school_id)
    return query.all()


def count_present_today(db_session, school_ids):
    if not school_ids:
        return 0
    return db_session.query(func.count(Attendance.id)).filter(
        Attendance.school_id.in_(school_ids),
        Attendance.date == date.today(),
        Attendance.status.in_(('Present', 'Late', 'Half-Day'))
    ).scalar() or 0

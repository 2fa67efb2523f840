"""
Timetable Helper Functions
Validation for periods, rooms and schedules, conflict detection, and the
sync that turns scheduled slots into teacher class assignments
"""

from datetime import datetime, date
import logging

from validators import ValidationError, RequestValidator

logger = logging.getLogger(__name__)

SCHEDULE_FIELDS = (
    'class_id', 'teacher_id', 'period_id', 'room_id', 'subject', 'grade',
    'day_of_week', 'start_time', 'end_time', 'academic_year', 'notes',
)


def get_current_academic_year():
    """Get current academic year based on date (April to March)"""
    today = date.today()
    if today.month >= 4:
        return f"{today.year}-{str(today.year + 1)[-2:]}"
    return f"{today.year - 1}-{str(today.year)[-2:]}"


def parse_time(value, field_name):
    """HH:MM or HH:MM:SS string to a time object; None when missing"""
    value = RequestValidator.validate_time(value, field_name)
    if value is None:
        return None
    return datetime.strptime(value, '%H:%M:%S' if len(value) == 8 else '%H:%M').time()


def _optional_id(value):
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return str(value).strip()


def _check_time_range(start_time, end_time):
    if start_time >= end_time:
        raise ValidationError('end_time', 'must be after start_time')


def _optional_bool(data, key):
    if key not in data:
        return None
    if not isinstance(data[key], bool):
        raise ValidationError(key, 'must be true or false')
    return data[key]


# ===== PERIODS & ROOMS =====

def validate_period_data(data):
    """
    Validate a period payload

    Returns:
        dict with period_number, start_time, end_time and (when given) is_active
    Raises:
        ValidationError if invalid
    """
    period_number = RequestValidator.validate_int(data.get('period_number'), 'period_number', minimum=1)
    if period_number is None:
        raise ValidationError('period_number', 'is required')
    start_time = parse_time(data.get('start_time'), 'start_time')
    end_time = parse_time(data.get('end_time'), 'end_time')
    if start_time is None:
        raise ValidationError('start_time', 'is required')
    if end_time is None:
        raise ValidationError('end_time', 'is required')
    _check_time_range(start_time, end_time)

    validated = {'period_number': period_number, 'start_time': start_time, 'end_time': end_time}
    is_active = _optional_bool(data, 'is_active')
    if is_active is not None:
        validated['is_active'] = is_active
    return validated


def validate_room_data(data):
    room_number = data.get('room_number')
    if isinstance(room_number, int) and not isinstance(room_number, bool):
        room_number = str(room_number)
    validated = {
        'room_number': RequestValidator.validate_text(room_number, 'room_number', max_length=50),
        'room_name': (data.get('room_name') or '').strip() or None,
        'capacity': RequestValidator.validate_int(data.get('capacity'), 'capacity', minimum=1),
        'location': (data.get('location') or '').strip() or None,
    }
    facilities = data.get('facilities') or []
    if not isinstance(facilities, list) or not all(isinstance(f, str) for f in facilities):
        raise ValidationError('facilities', 'must be an array of strings')
    validated['facilities'] = [f.strip() for f in facilities if f.strip()]

    is_active = _optional_bool(data, 'is_active')
    if is_active is not None:
        validated['is_active'] = is_active
    return validated


def active_schedule_count(session, **filters):
    from timetable_models import ClassSchedule

    return session.query(ClassSchedule).filter_by(is_active=True, **filters).count()


# ===== SCHEDULES =====

def schedule_payload(schedule, data):
    """Existing schedule values overlaid with the fields present in an update body"""
    from timetable_models import format_time

    merged = {
        'class_id': schedule.class_id,
        'teacher_id': schedule.teacher_id,
        'period_id': schedule.period_id,
        'room_id': schedule.room_id,
        'subject': schedule.subject,
        'grade': schedule.grade,
        'day_of_week': schedule.day_of_week.value if schedule.day_of_week else None,
        'start_time': format_time(schedule.start_time),
        'end_time': format_time(schedule.end_time),
        'academic_year': schedule.academic_year,
        'notes': schedule.notes,
    }
    merged.update({key: data[key] for key in SCHEDULE_FIELDS if key in data})
    return merged


def validate_schedule_data(session, school_id, data):
    """
    Validate a schedule payload against the school's periods, rooms,
    classes and teachers

    When period_id is set the slot takes the period's times; otherwise
    start_time and end_time are required.

    Returns:
        dict of ClassSchedule column values
    Raises:
        ValidationError if invalid
    """
    from models import Class
    from teacher_models import TeacherSchool
    from timetable_models import Period, Room, DayOfWeekEnum, DAYS_OF_WEEK
    from course_helpers import normalize_grade

    subject = RequestValidator.validate_text(data.get('subject'), 'subject', max_length=100)
    grade = normalize_grade(data.get('grade'))
    if not grade:
        raise ValidationError('grade', 'is required')

    day = (data.get('day_of_week') or '')
    day = day.strip().capitalize() if isinstance(day, str) else ''
    if not day:
        raise ValidationError('day_of_week', 'is required')
    if day not in DAYS_OF_WEEK:
        raise ValidationError('day_of_week', f"must be one of: {', '.join(DAYS_OF_WEEK)}")

    period_id = _optional_id(data.get('period_id'))
    if period_id:
        period = session.query(Period).filter_by(id=period_id, school_id=school_id).first()
        if not period:
            raise ValidationError('period_id', 'does not exist or is not associated with this school')
        start_time, end_time = period.start_time, period.end_time
    else:
        start_time = parse_time(data.get('start_time'), 'start_time')
        end_time = parse_time(data.get('end_time'), 'end_time')
        if start_time is None or end_time is None:
            raise ValidationError('period_id', 'or start_time and end_time are required')
        _check_time_range(start_time, end_time)

    room_id = _optional_id(data.get('room_id'))
    if room_id and not session.query(Room.id).filter_by(id=room_id, school_id=school_id).first():
        raise ValidationError('room_id', 'does not exist or is not associated with this school')

    class_id = _optional_id(data.get('class_id'))
    if class_id and not session.query(Class.id).filter_by(id=class_id, school_id=school_id).first():
        raise ValidationError('class_id', 'does not exist or is not associated with this school')

    teacher_id = _optional_id(data.get('teacher_id'))
    if teacher_id and not session.query(TeacherSchool.id).filter_by(
            teacher_id=teacher_id, school_id=school_id).first():
        raise ValidationError('teacher_id', 'is not a teacher at this school')

    return {
        'class_id': class_id,
        'teacher_id': teacher_id,
        'period_id': period_id,
        'room_id': room_id,
        'subject': subject,
        'grade': grade,
        'day_of_week': DayOfWeekEnum(day),
        'start_time': start_time,
        'end_time': end_time,
        'academic_year': (data.get('academic_year') or '').strip() or get_current_academic_year(),
        'notes': (data.get('notes') or '').strip() or None,
    }


def find_schedule_conflict(session, school_id, fields, exclude_id=None):
    """
    First clash between a proposed slot and the school's active schedules

    Two slots clash on the same day when their times overlap and they share
    a teacher, a room or a class. Slots that only touch at a boundary
    (09:00-10:00 and 10:00-11:00) do not clash.

    Returns:
        (error, details) tuple, or None when the slot is free
    """
    from timetable_models import ClassSchedule

    query = session.query(ClassSchedule).filter(
        ClassSchedule.school_id == school_id,
        ClassSchedule.day_of_week == fields['day_of_week'],
        ClassSchedule.is_active == True,
        ClassSchedule.start_time < fields['end_time'],
        ClassSchedule.end_time > fields['start_time'],
    )
    if exclude_id:
        query = query.filter(ClassSchedule.id != exclude_id)

    checks = (
        ('teacher_id', 'Schedule conflict', 'Teacher already has a class scheduled at this time'),
        ('room_id', 'Room conflict', 'Room is already booked at this time'),
        ('class_id', 'Class conflict', 'Class already has a subject scheduled at this time'),
    )
    for field, error, details in checks:
        if fields.get(field) and query.filter(getattr(ClassSchedule, field) == fields[field]).first():
            logger.info(f"{error} for school {school_id} on {fields['day_of_week'].value} "
                        f"{fields['start_time']}-{fields['end_time']}")
            return error, details
    return None


def serialize_schedules(session, schedules):
    """Schedule dicts with their class, teacher, period and room attached"""
    from models import Class, User
    from timetable_models import Period, Room

    def lookup(model, ids):
        ids = {i for i in ids if i}
        if not ids:
            return {}
        return {row.id: row for row in session.query(model).filter(model.id.in_(ids)).all()}

    classes = lookup(Class, [s.class_id for s in schedules])
    teachers = lookup(User, [s.teacher_id for s in schedules])
    periods = lookup(Period, [s.period_id for s in schedules])
    rooms = lookup(Room, [s.room_id for s in schedules])

    result = []
    for schedule in schedules:
        item = schedule.to_dict()
        class_obj = classes.get(schedule.class_id)
        teacher = teachers.get(schedule.teacher_id)
        period = periods.get(schedule.period_id)
        room = rooms.get(schedule.room_id)
        item['class'] = {
            'id': class_obj.id, 'class_name': class_obj.class_name,
            'grade': class_obj.grade, 'subject': class_obj.subject,
        } if class_obj else None
        item['teacher'] = {'id': teacher.id, 'full_name': teacher.full_name, 'email': teacher.email} if teacher else None
        item['period'] = {
            'id': period.id, 'period_number': period.period_number,
            'start_time': item['start_time'], 'end_time': item['end_time'],
        } if period else None
        item['room'] = {
            'id': room.id, 'room_number': room.room_number,
            'room_name': room.room_name, 'capacity': room.capacity,
        } if room else None
        result.append(item)
    return result


def sort_schedules(schedules):
    """Monday first, then by start time"""
    from timetable_models import DAYS_OF_WEEK

    return sorted(schedules, key=lambda s: (DAYS_OF_WEEK.index(s.day_of_week.value), s.start_time))


def sync_schedules_to_teachers(session, school_id):
    """
    Make sure every active schedule with a teacher has a matching teacher
    class assignment

    Schedules without a class are linked to the school's active class for
    the same grade and subject, creating that class when none exists.

    Returns:
        dict with synced, skipped and total counts
    """
    from models import Class
    from teacher_models import TeacherClass
    from timetable_models import ClassSchedule

    schedules = session.query(ClassSchedule).filter(
        ClassSchedule.school_id == school_id,
        ClassSchedule.is_active == True,
        ClassSchedule.teacher_id.isnot(None),
    ).all()

    linked = {
        (row.teacher_id, row.class_id)
        for row in session.query(TeacherClass).filter_by(school_id=school_id).all()
    }
    synced = skipped = 0

    for schedule in schedules:
        if not schedule.class_id:
            class_obj = session.query(Class).filter_by(
                school_id=school_id, grade=schedule.grade, subject=schedule.subject, is_active=True
            ).first()
            if not class_obj:
                class_obj = Class(
                    school_id=school_id,
                    grade=schedule.grade,
                    class_name=f"{schedule.grade} - {schedule.subject}",
                    subject=schedule.subject,
                    academic_year=schedule.academic_year or get_current_academic_year(),
                    is_active=True,
                )
                session.add(class_obj)
                session.flush()
                logger.info(f"Created class {class_obj.class_name} for school {school_id}")
            schedule.class_id = class_obj.id

        if (schedule.teacher_id, schedule.class_id) in linked:
            skipped += 1
            continue

        session.add(TeacherClass(
            teacher_id=schedule.teacher_id,
            class_id=schedule.class_id,
            school_id=school_id,
            subject=schedule.subject,
        ))
        linked.add((schedule.teacher_id, schedule.class_id))
        synced += 1

    logger.info(f"Schedule sync for school {school_id}: {synced} synced, {skipped} skipped")
    return {'synced': synced, 'skipped': skipped, 'total': len(schedules)}

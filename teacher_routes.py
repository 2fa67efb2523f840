"""
Teacher Portal Routes
Schools, classes, attendance, leave applications, teaching reports,
student progress and notifications for the logged-in teacher
"""

from flask import Blueprint, request, jsonify
from flask_login import current_user
from sqlalchemy import func
from datetime import date
import logging

from db_single import get_session
from models import School, Class, User
from teacher_models import TeacherSchool, TeacherClass, TeacherReport
from student_models import StudentSchool, StudentCourse, Submission
from leave_models import TeacherLeave, LeaveStatusEnum
from notification_models import Notification
from extensions import limiter, RateLimitPresets
from auth_helpers import (
    require_role, get_json_body, validation_error_response, teacher_has_school_access, get_teacher_school_ids
)
from validators import ValidationError, RequestValidator
from attendance_helpers import ATTENDANCE_STATUSES

logger = logging.getLogger(__name__)

teacher_bp = Blueprint('teacher', __name__, url_prefix='/api/teacher')


def _forbidden_school():
    return jsonify({'error': 'Forbidden', 'message': 'You do not have access to this school'}), 403


# ===== SCHOOLS AND CLASSES =====

@teacher_bp.route('/schools', methods=['GET'])
@require_role('teacher')
def teacher_schools():
    session_db = get_session()
    try:
        rows = session_db.query(TeacherSchool, School).join(
            School, School.id == TeacherSchool.school_id
        ).filter(TeacherSchool.teacher_id == current_user.id).order_by(School.name).all()

        schools = []
        for link, school in rows:
            item = school.to_dict()
            item['grades_assigned'] = link.grades
            item['subjects'] = link.subject_list
            item['is_primary'] = bool(link.is_primary)
            schools.append(item)
        return jsonify({'success': True, 'schools': schools, 'count': len(schools)})
    except Exception as e:
        logger.error(f"Error loading schools for teacher {current_user.id}: {e}")
        return jsonify({'error': 'Failed to fetch schools'}), 500
    finally:
        session_db.close()


@teacher_bp.route('/classes', methods=['GET'])
@require_role('teacher')
def teacher_classes():
    school_id = request.args.get('school_id')
    session_db = get_session()
    try:
        if school_id and not teacher_has_school_access(session_db, current_user.id, school_id):
            return _forbidden_school()

        query = session_db.query(TeacherClass, Class).join(Class, Class.id == TeacherClass.class_id).filter(
            TeacherClass.teacher_id == current_user.id
        )
        if school_id:
            query = query.filter(TeacherClass.school_id == school_id)

        classes = []
        for link, class_obj in query.order_by(Class.grade, Class.class_name).all():
            item = class_obj.to_dict()
            item['subject'] = link.subject or class_obj.subject
            item['is_primary'] = bool(link.is_primary)
            classes.append(item)
        return jsonify({'success': True, 'classes': classes, 'count': len(classes)})
    except Exception as e:
        logger.error(f"Error loading classes for teacher {current_user.id}: {e}")
        return jsonify({'error': 'Failed to fetch classes'}), 500
    finally:
        session_db.close()


@teacher_bp.route('/schedules', methods=['GET'])
@require_role('teacher')
def teacher_schedules():
    """Weekly timetable of the logged-in teacher across their schools"""
    from timetable_models import ClassSchedule
    from timetable_helpers import serialize_schedules, sort_schedules

    school_id = request.args.get('school_id')
    session_db = get_session()
    try:
        if school_id and not teacher_has_school_access(session_db, current_user.id, school_id):
            return _forbidden_school()

        query = session_db.query(ClassSchedule).filter(
            ClassSchedule.teacher_id == current_user.id,
            ClassSchedule.is_active == True,
        )
        if school_id:
            query = query.filter(ClassSchedule.school_id == school_id)

        schedules = serialize_schedules(session_db, sort_schedules(query.all()))
        return jsonify({'success': True, 'schedules': schedules, 'count': len(schedules)})
    except Exception as e:
        logger.error(f"Error loading schedules for teacher {current_user.id}: {e}")
        return jsonify({'error': 'Failed to fetch schedules'}), 500
    finally:
        session_db.close()


# ===== ATTENDANCE =====

@teacher_bp.route('/attendance', methods=['POST'])
@require_role('teacher')
@limiter.limit(RateLimitPresets.WRITE)
def mark_attendance():
    from attendance_helpers import upsert_attendance

    data = get_json_body()
    try:
        school_id = RequestValidator.validate_uuid(data.get('school_id'), 'school_id')
        attendance_date = RequestValidator.validate_date(data.get('date'), 'date')
        check_in = RequestValidator.validate_time(data.get('check_in_time'), 'check_in_time')
        check_out = RequestValidator.validate_time(data.get('check_out_time'), 'check_out_time')
        status = data.get('status') or 'Present'
        if status not in ATTENDANCE_STATUSES:
            raise ValidationError('status', f"must be one of {', '.join(ATTENDANCE_STATUSES)}")
    except ValidationError as e:
        return validation_error_response(e)

    session_db = get_session()
    try:
        if not teacher_has_school_access(session_db, current_user.id, school_id):
            return _forbidden_school()

        record, created = upsert_attendance(
            session_db, current_user.id, school_id, attendance_date, status,
            check_in=check_in, check_out=check_out, remarks=data.get('remarks')
        )
        session_db.commit()
        return jsonify({
            'success': True,
            'message': 'Attendance marked successfully' if created else 'Attendance updated successfully',
            'attendance': record.to_dict(),
        }), 201 if created else 200
    except Exception as e:
        session_db.rollback()
        logger.error(f"Error marking attendance for teacher {current_user.id}: {e}")
        return jsonify({'error': 'Failed to mark attendance'}), 500
    finally:
        session_db.close()


@teacher_bp.route('/attendance', methods=['GET'])
@require_role('teacher')
def attendance_history():
    from attendance_helpers import query_attendance, calculate_attendance_stats

    try:
        start_date = RequestValidator.validate_date(request.args.get('start_date'), 'start_date', required=False)
        end_date = RequestValidator.validate_date(request.args.get('end_date'), 'end_date', required=False)
    except ValidationError as e:
        return validation_error_response(e)

    school_id = request.args.get('school_id')
    session_db = get_session()
    try:
        if school_id and not teacher_has_school_access(session_db, current_user.id, school_id):
            return _forbidden_school()

        rows = query_attendance(
            session_db,
            school_ids=[school_id] if school_id else None,
            user_id=current_user.id,
            start_date=start_date,
            end_date=end_date,
        ).all()
        records = [record for record, _, _ in rows]
        return jsonify({
            'success': True,
            'attendance': [r.to_dict() for r in records],
            'stats': calculate_attendance_stats(records),
        })
    except Exception as e:
        logger.error(f"Error loading attendance for teacher {current_user.id}: {e}")
        return jsonify({'error': 'Failed to fetch attendance'}), 500
    finally:
        session_db.close()


@teacher_bp.route('/attendance/today', methods=['GET'])
@require_role('teacher')
def attendance_today():
    from attendance_helpers import get_today_attendance

    session_db = get_session()
    try:
        records = get_today_attendance(session_db, current_user.id, request.args.get('school_id'))
        return jsonify({
            'success': True,
            'date': date.today().isoformat(),
            'attendance': [r.to_dict() for r in records],
            'marked': bool(records),
        })
    except Exception as e:
        logger.error(f"Error loading today's attendance for teacher {current_user.id}: {e}")
        return jsonify({'error': 'Failed to fetch attendance'}), 500
    finally:
        session_db.close()


# ===== LEAVES =====

@teacher_bp.route('/leaves', methods=['POST'])
@require_role('teacher')
@limiter.limit(RateLimitPresets.WRITE)
def apply_leave():
    from leave_helpers import validate_leave_data, create_leave
    from notification_helpers import notify_users, get_school_admin_user_ids

    try:
        validated = validate_leave_data(get_json_body())
    except ValidationError as e:
        return validation_error_response(e)

    session_db = get_session()
    try:
        if not teacher_has_school_access(session_db, current_user.id, validated['school_id']):
            return _forbidden_school()

        leave = create_leave(session_db, current_user.id, validated)
        notify_users(
            session_db, get_school_admin_user_ids(session_db, validated['school_id']),
            'New Leave Request',
            f"{current_user.full_name} requested {leave.total_days} day(s) of {leave.leave_type} leave "
            f"from {leave.start_date.isoformat()} to {leave.end_date.isoformat()}.",
            notification_type='leave', sender_id=current_user.id, school_id=validated['school_id'],
        )
        session_db.commit()
        return jsonify({'success': True, 'message': 'Leave request submitted', 'leave': leave.to_dict()}), 201
    except Exception as e:
        session_db.rollback()
        logger.error(f"Error creating leave for teacher {current_user.id}: {e}")
        return jsonify({'error': 'Failed to submit leave request'}), 500
    finally:
        session_db.close()


@teacher_bp.route('/leaves', methods=['GET'])
@require_role('teacher')
def my_leaves():
    from leave_helpers import serialize_leaves

    session_db = get_session()
    try:
        leaves = session_db.query(TeacherLeave).filter_by(teacher_id=current_user.id).order_by(
            TeacherLeave.created_at.desc()).all()
        return jsonify({'success': True, 'leaves': serialize_leaves(session_db, leaves), 'count': len(leaves)})
    except Exception as e:
        logger.error(f"Error loading leaves for teacher {current_user.id}: {e}")
        return jsonify({'error': 'Failed to fetch leaves'}), 500
    finally:
        session_db.close()


# ===== REPORTS =====

@teacher_bp.route('/reports', methods=['GET'])
@require_role('teacher')
def my_reports():
    school_id = request.args.get('school_id')
    session_db = get_session()
    try:
        query = session_db.query(TeacherReport).filter(TeacherReport.teacher_id == current_user.id)
        if school_id:
            query = query.filter(TeacherReport.school_id == school_id)
        reports = query.order_by(TeacherReport.report_date.desc()).limit(100).all()
        return jsonify({'success': True, 'reports': [r.to_dict() for r in reports], 'count': len(reports)})
    except Exception as e:
        logger.error(f"Error loading reports for teacher {current_user.id}: {e}")
        return jsonify({'error': 'Failed to fetch reports'}), 500
    finally:
        session_db.close()


@teacher_bp.route('/reports', methods=['POST'])
@require_role('teacher')
@limiter.limit(RateLimitPresets.WRITE)
def submit_report():
    """Daily teaching report"""
    data = get_json_body()
    try:
        school_id = RequestValidator.validate_uuid(data.get('school_id'), 'school_id')
        report_date = RequestValidator.validate_date(data.get('report_date') or date.today().isoformat(), 'report_date')
        topics = RequestValidator.validate_text(data.get('topics_covered'), 'topics_covered', 1, 5000)
        attendance_count = data.get('student_attendance_count')
        if attendance_count not in (None, ''):
            try:
                attendance_count = int(attendance_count)
            except (TypeError, ValueError):
                raise ValidationError('student_attendance_count', 'must be a number')
        else:
            attendance_count = None
    except ValidationError as e:
        return validation_error_response(e)

    session_db = get_session()
    try:
        if not teacher_has_school_access(session_db, current_user.id, school_id):
            return _forbidden_school()

        report = TeacherReport(
            teacher_id=current_user.id,
            school_id=school_id,
            class_id=data.get('class_id') or None,
            grade=data.get('grade'),
            report_date=report_date,
            topics_covered=topics,
            activities=data.get('activities'),
            homework_assigned=data.get('homework_assigned'),
            student_attendance_count=attendance_count,
            notes=data.get('notes'),
        )
        session_db.add(report)
        session_db.commit()
        return jsonify({'success': True, 'message': 'Report submitted', 'report': report.to_dict()}), 201
    except Exception as e:
        session_db.rollback()
        logger.error(f"Error saving report for teacher {current_user.id}: {e}")
        return jsonify({'error': 'Failed to submit report'}), 500
    finally:
        session_db.close()


# ===== DASHBOARD AND PROGRESS =====

@teacher_bp.route('/dashboard', methods=['GET'])
@require_role('teacher')
def dashboard():
    from attendance_helpers import get_today_attendance

    session_db = get_session()
    try:
        school_ids = get_teacher_school_ids(session_db, current_user.id)
        today_records = get_today_attendance(session_db, current_user.id)
        stats = {
            'school_count': len(school_ids),
            'attendance_marked_today': bool(today_records),
            'today_status': today_records[0].status if today_records else None,
            'pending_leaves': session_db.query(TeacherLeave).filter(
                TeacherLeave.teacher_id == current_user.id,
                TeacherLeave.status == LeaveStatusEnum.PENDING
            ).count(),
            'unread_notifications': session_db.query(Notification).filter(
                Notification.user_id == current_user.id,
                Notification.is_read == False
            ).count(),
            'student_count': session_db.query(func.count(func.distinct(StudentSchool.student_id))).filter(
                StudentSchool.school_id.in_(school_ids)
            ).scalar() if school_ids else 0,
        }
        return jsonify({'success': True, 'stats': stats})
    except Exception as e:
        logger.error(f"Error loading dashboard for teacher {current_user.id}: {e}")
        return jsonify({'error': 'Failed to load dashboard'}), 500
    finally:
        session_db.close()


@teacher_bp.route('/student-progress', methods=['GET'])
@require_role('teacher')
def student_progress():
    """Course progress and submission counts of students in the teacher's schools"""
    school_id = request.args.get('school_id')
    grade = request.args.get('grade')

    session_db = get_session()
    try:
        school_ids = get_teacher_school_ids(session_db, current_user.id)
        if school_id:
            if school_id not in school_ids:
                return _forbidden_school()
            school_ids = [school_id]
        if not school_ids:
            return jsonify({'success': True, 'students': [], 'count': 0})

        query = session_db.query(StudentSchool, User.full_name, User.email).join(
            User, User.id == StudentSchool.student_id
        ).filter(StudentSchool.school_id.in_(school_ids), StudentSchool.is_active == True)
        if grade:
            query = query.filter(StudentSchool.grade == grade)
        enrolments = query.order_by(User.full_name).all()

        student_ids = [e.student_id for e, _, _ in enrolments]
        course_stats = {}
        submission_counts = {}
        if student_ids:
            for student_id, avg, total, completed in session_db.query(
                    StudentCourse.student_id,
                    func.avg(StudentCourse.progress_percentage),
                    func.count(StudentCourse.id),
                    func.sum(StudentCourse.is_completed)
            ).filter(StudentCourse.student_id.in_(student_ids)).group_by(StudentCourse.student_id):
                course_stats[student_id] = (round(float(avg or 0), 1), total, int(completed or 0))
            submission_counts = dict(session_db.query(Submission.student_id, func.count(Submission.id)).filter(
                Submission.student_id.in_(student_ids)).group_by(Submission.student_id).all())

        students = []
        for enrolment, full_name, email in enrolments:
            avg, total, completed = course_stats.get(enrolment.student_id, (0.0, 0, 0))
            students.append({
                'student_id': enrolment.student_id,
                'full_name': full_name,
                'email': email,
                'school_id': enrolment.school_id,
                'grade': enrolment.grade,
                'courses_enrolled': total,
                'courses_completed': completed,
                'average_progress': avg,
                'submissions': submission_counts.get(enrolment.student_id, 0),
            })
        return jsonify({'success': True, 'students': students, 'count': len(students)})
    except Exception as e:
        logger.error(f"Error loading student progress for teacher {current_user.id}: {e}")
        return jsonify({'error': 'Failed to fetch student progress'}), 500
    finally:
        session_db.close()


# ===== NOTIFICATIONS =====

@teacher_bp.route('/notifications', methods=['GET'])
@require_role('teacher')
def sent_notifications():
    from notification_helpers import list_sent_notifications

    session_db = get_session()
    try:
        data = list_sent_notifications(session_db, current_user.id)
        return jsonify({'success': True, 'notifications': data, 'count': len(data)})
    except Exception as e:
        logger.error(f"Error listing notifications sent by teacher {current_user.id}: {e}")
        return jsonify({'error': 'Failed to fetch notifications'}), 500
    finally:
        session_db.close()


@teacher_bp.route('/notifications', methods=['POST'])
@require_role('teacher')
@limiter.limit(RateLimitPresets.WRITE)
def send_notification():
    """Teachers reach the students of their own schools only"""
    from notification_routes import send_from_request

    school_id = get_json_body().get('school_id')
    session_db = get_session()
    try:
        school_ids = get_teacher_school_ids(session_db, current_user.id)
    finally:
        session_db.close()

    if school_id and school_id not in school_ids:
        return _forbidden_school()
    reachable_schools = [school_id] if school_id else school_ids

    def allowed_students(session):
        if not reachable_schools:
            return set()
        rows = session.query(StudentSchool.student_id).filter(
            StudentSchool.school_id.in_(reachable_schools), StudentSchool.is_active == True
        ).all()
        return {r[0] for r in rows}

    return send_from_request(allowed_roles=('student',), school_id=school_id, allowed_ids_fn=allowed_students)

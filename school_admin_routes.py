"""
School Admin Portal Routes
Everything here is scoped to the single school the logged-in school admin manages
"""

from flask import Blueprint, request, jsonify
from flask_login import current_user
from sqlalchemy import or_
import logging

from db_single import get_session
from models import School, User, PasswordResetRequest, ROLE_TEACHER, ROLE_STUDENT
from teacher_models import Teacher, TeacherSchool, TeacherReport
from student_models import Student, StudentSchool
from course_models import Course, CourseAccess
from leave_models import TeacherLeave, LeaveStatusEnum
from extensions import limiter, RateLimitPresets
from auth_helpers import require_role, get_json_body, validation_error_response, get_admin_school_id
from validators import ValidationError, RequestValidator
from pagination_helpers import parse_pagination_params, pagination_meta

logger = logging.getLogger(__name__)

school_admin_bp = Blueprint('school_admin', __name__, url_prefix='/api/school-admin')


def _no_school():
    return jsonify({'error': 'Forbidden', 'message': 'No school is assigned to this account'}), 403


def _school_user_ids(session_db, school_id, role=None):
    """Users attached to the school through teacher or student assignments"""
    ids = set()
    if role in (None, ROLE_TEACHER):
        ids.update(r[0] for r in session_db.query(TeacherSchool.teacher_id).filter_by(school_id=school_id).all())
    if role in (None, ROLE_STUDENT):
        ids.update(r[0] for r in session_db.query(StudentSchool.student_id).filter_by(school_id=school_id).all())
    if role is None:
        ids.update(r[0] for r in session_db.query(User.id).filter(User.school_id == school_id).all())
    return ids


# ===== SCHOOL =====

@school_admin_bp.route('/school', methods=['GET'])
@require_role('school_admin')
def my_school():
    session_db = get_session()
    try:
        school_id = get_admin_school_id(session_db)
        if not school_id:
            return _no_school()
        school = session_db.get(School, school_id)
        if not school:
            return jsonify({'error': 'School not found'}), 404
        return jsonify({'success': True, 'school': school.to_dict()})
    except Exception as e:
        logger.error(f"Error loading school for admin {current_user.id}: {e}")
        return jsonify({'error': 'Failed to fetch school'}), 500
    finally:
        session_db.close()


@school_admin_bp.route('/stats', methods=['GET'])
@require_role('school_admin')
def school_stats():
    from attendance_helpers import count_present_today

    session_db = get_session()
    try:
        school_id = get_admin_school_id(session_db)
        if not school_id:
            return _no_school()

        visible_courses = session_db.query(CourseAccess.course_id).filter(CourseAccess.school_id == school_id)
        stats = {
            'total_teachers': session_db.query(TeacherSchool).filter_by(school_id=school_id).count(),
            'total_students': session_db.query(StudentSchool).filter_by(school_id=school_id, is_active=True).count(),
            'total_courses': session_db.query(Course).filter(Course.id.in_(visible_courses)).count(),
            'teachers_present_today': count_present_today(session_db, [school_id]),
            'pending_leaves': session_db.query(TeacherLeave).filter(
                TeacherLeave.school_id == school_id,
                TeacherLeave.status == LeaveStatusEnum.PENDING
            ).count(),
            'pending_password_resets': session_db.query(PasswordResetRequest).filter_by(
                school_id=school_id, status='pending').count(),
        }
        return jsonify({'success': True, 'school_id': school_id, 'stats': stats})
    except Exception as e:
        logger.error(f"Error loading stats for school admin {current_user.id}: {e}")
        return jsonify({'error': 'Failed to load statistics'}), 500
    finally:
        session_db.close()


@school_admin_bp.route('/teachers', methods=['GET'])
@require_role('school_admin')
@limiter.limit(RateLimitPresets.READ)
def school_teachers():
    search = (request.args.get('search') or '').strip()
    session_db = get_session()
    try:
        school_id = get_admin_school_id(session_db)
        if not school_id:
            return _no_school()

        query = session_db.query(Teacher, TeacherSchool).join(
            TeacherSchool, TeacherSchool.teacher_id == Teacher.user_id
        ).filter(TeacherSchool.school_id == school_id)
        if search:
            like = f"%{search}%"
            query = query.filter(or_(Teacher.full_name.ilike(like), Teacher.email.ilike(like)))

        teachers = []
        for teacher, link in query.order_by(Teacher.full_name).all():
            item = teacher.to_dict()
            item['grades_assigned'] = link.grades
            item['subjects'] = link.subject_list
            item['is_primary'] = bool(link.is_primary)
            teachers.append(item)
        return jsonify({'success': True, 'teachers': teachers, 'count': len(teachers)})
    except Exception as e:
        logger.error(f"Error listing teachers for school admin {current_user.id}: {e}")
        return jsonify({'error': 'Failed to fetch teachers'}), 500
    finally:
        session_db.close()


@school_admin_bp.route('/students', methods=['GET'])
@require_role('school_admin')
@limiter.limit(RateLimitPresets.READ)
def school_students():
    grade = request.args.get('grade')
    search = (request.args.get('search') or '').strip()
    limit, offset = parse_pagination_params()

    session_db = get_session()
    try:
        school_id = get_admin_school_id(session_db)
        if not school_id:
            return _no_school()

        query = session_db.query(Student, StudentSchool).join(
            StudentSchool, StudentSchool.student_id == Student.user_id
        ).filter(StudentSchool.school_id == school_id)
        if grade:
            query = query.filter(StudentSchool.grade == grade)
        if search:
            like = f"%{search}%"
            query = query.filter(or_(Student.full_name.ilike(like), Student.email.ilike(like)))

        total = query.count()
        students = []
        for student, enrolment in query.order_by(Student.full_name).offset(offset).limit(limit).all():
            item = student.to_dict()
            item['grade'] = enrolment.grade
            item['joining_code'] = enrolment.joining_code
            item['is_active'] = bool(enrolment.is_active)
            students.append(item)
        return jsonify({'success': True, 'students': students, 'pagination': pagination_meta(total, limit, offset)})
    except Exception as e:
        logger.error(f"Error listing students for school admin {current_user.id}: {e}")
        return jsonify({'error': 'Failed to fetch students'}), 500
    finally:
        session_db.close()


@school_admin_bp.route('/courses', methods=['GET'])
@require_role('school_admin')
def school_courses():
    """Courses visible to the school, with the grades they are open to"""
    session_db = get_session()
    try:
        school_id = get_admin_school_id(session_db)
        if not school_id:
            return _no_school()

        grades_by_course = {}
        for course_id, grade in session_db.query(CourseAccess.course_id, CourseAccess.grade).filter(
                CourseAccess.school_id == school_id).all():
            grades_by_course.setdefault(course_id, []).append(grade)

        courses = []
        if grades_by_course:
            for course in session_db.query(Course).filter(Course.id.in_(list(grades_by_course))).order_by(
                    Course.created_at.desc()).all():
                item = course.to_dict()
                item['grades'] = sorted(grades_by_course[course.id])
                courses.append(item)
        return jsonify({'success': True, 'courses': courses, 'count': len(courses)})
    except Exception as e:
        logger.error(f"Error listing courses for school admin {current_user.id}: {e}")
        return jsonify({'error': 'Failed to fetch courses'}), 500
    finally:
        session_db.close()


@school_admin_bp.route('/reports', methods=['GET'])
@require_role('school_admin')
def school_reports():
    try:
        start_date = RequestValidator.validate_date(request.args.get('start_date'), 'start_date', required=False)
        end_date = RequestValidator.validate_date(request.args.get('end_date'), 'end_date', required=False)
    except ValidationError as e:
        return validation_error_response(e)

    teacher_id = request.args.get('teacher_id')
    session_db = get_session()
    try:
        school_id = get_admin_school_id(session_db)
        if not school_id:
            return _no_school()

        query = session_db.query(TeacherReport, User.full_name).join(
            User, User.id == TeacherReport.teacher_id
        ).filter(TeacherReport.school_id == school_id)
        if teacher_id:
            query = query.filter(TeacherReport.teacher_id == teacher_id)
        if start_date:
            query = query.filter(TeacherReport.report_date >= start_date)
        if end_date:
            query = query.filter(TeacherReport.report_date <= end_date)

        reports = []
        for report, teacher_name in query.order_by(TeacherReport.report_date.desc()).limit(200).all():
            item = report.to_dict()
            item['teacher_name'] = teacher_name
            reports.append(item)
        return jsonify({'success': True, 'reports': reports, 'count': len(reports)})
    except Exception as e:
        logger.error(f"Error listing reports for school admin {current_user.id}: {e}")
        return jsonify({'error': 'Failed to fetch reports'}), 500
    finally:
        session_db.close()


# ===== LEAVES AND ATTENDANCE =====

@school_admin_bp.route('/leaves', methods=['GET'])
@require_role('school_admin')
def school_leaves():
    from leave_helpers import serialize_leaves

    status = request.args.get('status')
    session_db = get_session()
    try:
        school_id = get_admin_school_id(session_db)
        if not school_id:
            return _no_school()

        query = session_db.query(TeacherLeave).filter(TeacherLeave.school_id == school_id)
        if status:
            try:
                query = query.filter(TeacherLeave.status == LeaveStatusEnum(status))
            except ValueError:
                return jsonify({'error': 'Invalid status'}), 400
        leaves = query.order_by(TeacherLeave.created_at.desc()).all()
        return jsonify({'success': True, 'leaves': serialize_leaves(session_db, leaves), 'count': len(leaves)})
    except Exception as e:
        logger.error(f"Error listing leaves for school admin {current_user.id}: {e}")
        return jsonify({'error': 'Failed to fetch leaves'}), 500
    finally:
        session_db.close()


@school_admin_bp.route('/leaves/<leave_id>', methods=['PATCH'])
@require_role('school_admin')
@limiter.limit(RateLimitPresets.WRITE)
def review_school_leave(leave_id):
    """Approve or reject a leave; approval marks the teacher's attendance"""
    from leave_helpers import review_leave
    from notification_helpers import notify_users
    from cache_helpers import invalidate

    data = get_json_body()
    session_db = get_session()
    try:
        school_id = get_admin_school_id(session_db)
        if not school_id:
            return _no_school()

        leave = session_db.query(TeacherLeave).filter_by(id=leave_id, school_id=school_id).first()
        if not leave:
            return jsonify({'error': 'Leave request not found'}), 404

        success, message = review_leave(session_db, leave, data.get('action'), current_user.id, notes=data.get('notes'))
        if not success:
            session_db.rollback()
            return jsonify({'error': message}), 400

        outcome = 'approved' if leave.status == LeaveStatusEnum.APPROVED else 'rejected'
        notify_users(
            session_db, [leave.teacher_id], f'Leave Request {outcome.title()}',
            f"Your {leave.leave_type} leave from {leave.start_date.isoformat()} to {leave.end_date.isoformat()} "
            f"was {outcome}.{' Remarks: ' + leave.admin_remarks if leave.admin_remarks else ''}",
            notification_type='leave', sender_id=current_user.id, school_id=school_id,
        )
        session_db.commit()
        invalidate('admin:stats')
        return jsonify({'success': True, 'message': message, 'leave': leave.to_dict()})
    except Exception as e:
        session_db.rollback()
        logger.error(f"Error reviewing leave {leave_id}: {e}")
        return jsonify({'error': 'Failed to update leave request'}), 500
    finally:
        session_db.close()


@school_admin_bp.route('/teacher-attendance', methods=['GET'])
@require_role('school_admin')
def school_teacher_attendance():
    from attendance_helpers import query_attendance, serialize_attendance_rows

    try:
        start_date = RequestValidator.validate_date(request.args.get('start_date'), 'start_date', required=False)
        end_date = RequestValidator.validate_date(request.args.get('end_date'), 'end_date', required=False)
    except ValidationError as e:
        return validation_error_response(e)

    session_db = get_session()
    try:
        school_id = get_admin_school_id(session_db)
        if not school_id:
            return _no_school()

        rows = query_attendance(
            session_db,
            school_ids=[school_id],
            user_id=request.args.get('teacher_id'),
            start_date=start_date,
            end_date=end_date,
        ).all()
        records = serialize_attendance_rows(rows)
        return jsonify({'success': True, 'attendance': records, 'count': len(records)})
    except Exception as e:
        logger.error(f"Error listing attendance for school admin {current_user.id}: {e}")
        return jsonify({'error': 'Failed to fetch attendance'}), 500
    finally:
        session_db.close()


# ===== PASSWORD RESET REQUESTS =====

@school_admin_bp.route('/password-reset-requests', methods=['GET'])
@require_role('school_admin')
def school_reset_requests():
    from password_reset_handler import serialize_reset_requests

    status = request.args.get('status')
    session_db = get_session()
    try:
        school_id = get_admin_school_id(session_db)
        if not school_id:
            return _no_school()

        query = session_db.query(PasswordResetRequest).filter(PasswordResetRequest.school_id == school_id)
        if status:
            query = query.filter(PasswordResetRequest.status == status)
        requests_ = query.order_by(PasswordResetRequest.requested_at.desc()).all()
        data = serialize_reset_requests(session_db, requests_)
        return jsonify({'success': True, 'requests': data, 'count': len(data)})
    except Exception as e:
        logger.error(f"Error listing reset requests for school admin {current_user.id}: {e}")
        return jsonify({'error': 'Failed to fetch password reset requests'}), 500
    finally:
        session_db.close()


@school_admin_bp.route('/password-reset-requests', methods=['PATCH'])
@require_role('school_admin')
@limiter.limit(RateLimitPresets.WRITE)
def review_school_reset_request():
    from password_reset_handler import review_reset_request

    data = get_json_body()
    if not data.get('id') or not data.get('status'):
        return jsonify({'error': 'id and status are required'}), 400

    session_db = get_session()
    try:
        school_id = get_admin_school_id(session_db)
        if not school_id:
            return _no_school()

        reset_request = session_db.query(PasswordResetRequest).filter_by(id=data['id'], school_id=school_id).first()
        if not reset_request:
            return jsonify({'error': 'Request not found'}), 404

        success, message, temp_password = review_reset_request(
            session_db, reset_request, data['status'], approver_id=current_user.id, notes=data.get('notes')
        )
        if not success:
            session_db.rollback()
            return jsonify({'error': message}), 400

        session_db.commit()
        response = {'success': True, 'message': message, 'request': reset_request.to_dict()}
        if temp_password:
            response['temp_password'] = temp_password
        return jsonify(response)
    except Exception as e:
        session_db.rollback()
        logger.error(f"Error reviewing reset request {data.get('id')}: {e}")
        return jsonify({'error': 'Failed to update password reset request'}), 500
    finally:
        session_db.close()


# ===== NOTIFICATIONS =====

@school_admin_bp.route('/notifications', methods=['GET'])
@require_role('school_admin')
def school_sent_notifications():
    from notification_helpers import list_sent_notifications

    session_db = get_session()
    try:
        data = list_sent_notifications(session_db, current_user.id)
        return jsonify({'success': True, 'notifications': data, 'count': len(data)})
    except Exception as e:
        logger.error(f"Error listing notifications sent by {current_user.id}: {e}")
        return jsonify({'error': 'Failed to fetch notifications'}), 500
    finally:
        session_db.close()


@school_admin_bp.route('/notifications', methods=['POST'])
@require_role('school_admin')
@limiter.limit(RateLimitPresets.WRITE)
def school_send_notification():
    from notification_routes import send_from_request

    session_db = get_session()
    try:
        school_id = get_admin_school_id(session_db)
    finally:
        session_db.close()
    if not school_id:
        return _no_school()

    return send_from_request(
        allowed_roles=('teacher', 'student'),
        school_id=school_id,
        allowed_ids_fn=lambda session: _school_user_ids(session, school_id),
    )


from timetable_routes import register_timetable_routes  # noqa: E402

register_timetable_routes(school_admin_bp, _no_school)

"""
Admin Routes
Platform administration API: schools, joining codes, accounts, password
reset requests, leaves, staff attendance, notifications and statistics
"""

from flask import Blueprint, request, jsonify
from flask_login import current_user
from sqlalchemy import func, or_
import logging

from db_single import get_session
from models import User, School, SchoolAdmin, JoinCode, PasswordResetRequest, ROLE_TEACHER, ROLE_STUDENT
from teacher_models import Teacher, TeacherSchool
from student_models import Student, StudentSchool
from course_models import Course, CourseAccess
from leave_models import TeacherLeave, LeaveStatusEnum
from extensions import limiter, RateLimitPresets
from auth_helpers import require_role, get_json_body, validation_error_response
from validators import ValidationError, RequestValidator, is_valid_uuid, validate_account_data
from pagination_helpers import parse_pagination_params, pagination_meta
from cache_helpers import get_or_set, invalidate, add_cache_headers, CacheTTL

logger = logging.getLogger(__name__)

SCHOOL_FIELDS = ('name', 'address', 'city', 'state', 'country', 'phone', 'email', 'website',
                 'principal_name', 'school_type', 'established_year', 'logo_url', 'is_active')


def _school_counts(session_db, school_ids):
    counts = {sid: {'teacher_count': 0, 'student_count': 0, 'course_count': 0} for sid in school_ids}
    if not school_ids:
        return counts
    for sid, total in session_db.query(TeacherSchool.school_id, func.count(TeacherSchool.id)).filter(
            TeacherSchool.school_id.in_(school_ids)).group_by(TeacherSchool.school_id):
        counts[sid]['teacher_count'] = total
    for sid, total in session_db.query(StudentSchool.school_id, func.count(StudentSchool.id)).filter(
            StudentSchool.school_id.in_(school_ids)).group_by(StudentSchool.school_id):
        counts[sid]['student_count'] = total
    for sid, total in session_db.query(CourseAccess.school_id, func.count(func.distinct(CourseAccess.course_id))).filter(
            CourseAccess.school_id.in_(school_ids)).group_by(CourseAccess.school_id):
        counts[sid]['course_count'] = total
    return counts


def _clean_school_fields(data):
    """Validated subset of school columns present in the payload"""
    fields = {}
    for key in SCHOOL_FIELDS:
        if key in data:
            fields[key] = data[key]
    if 'name' in fields:
        fields['name'] = RequestValidator.validate_text(fields['name'], 'name', 2, 200)
    if fields.get('email'):
        fields['email'] = RequestValidator.validate_email(fields['email'])
    if fields.get('phone'):
        fields['phone'] = RequestValidator.validate_phone(fields['phone'])
    if fields.get('established_year') not in (None, ''):
        try:
            fields['established_year'] = int(fields['established_year'])
        except (TypeError, ValueError):
            raise ValidationError('established_year', 'must be a year')
    return fields


def create_admin_blueprint():
    """Create admin blueprint for platform administration"""

    admin_bp = Blueprint('admin', __name__, url_prefix='/api/admin')

    # ===== SCHOOLS =====

    @admin_bp.route('/schools', methods=['GET'])
    @require_role('admin')
    @limiter.limit(RateLimitPresets.READ)
    def list_schools():
        search = (request.args.get('search') or '').strip()
        is_active = request.args.get('is_active')
        limit, offset = parse_pagination_params()

        def fetch():
            session_db = get_session()
            try:
                query = session_db.query(School)
                if search:
                    like = f"%{search}%"
                    query = query.filter(or_(School.name.ilike(like), School.city.ilike(like), School.email.ilike(like)))
                if is_active in ('true', 'false'):
                    query = query.filter(School.is_active == (is_active == 'true'))

                total = query.count()
                schools = query.order_by(School.created_at.desc()).offset(offset).limit(limit).all()
                counts = _school_counts(session_db, [s.id for s in schools])

                data = []
                for school in schools:
                    item = school.to_dict()
                    item.update(counts[school.id])
                    data.append(item)
                return {'schools': data, 'pagination': pagination_meta(total, limit, offset)}
            finally:
                session_db.close()

        try:
            payload = get_or_set(f"schools:list:{search}:{is_active}:{limit}:{offset}", fetch, CacheTTL.SHORT)
            return add_cache_headers(jsonify({'success': True, **payload}))
        except Exception as e:
            logger.error(f"Error listing schools: {e}")
            return jsonify({'error': 'Failed to fetch schools'}), 500

    @admin_bp.route('/schools', methods=['POST'])
    @require_role('admin')
    @limiter.limit(RateLimitPresets.WRITE)
    def create_school():
        from course_helpers import normalize_grade
        from joining_code_helpers import create_join_codes

        data = get_json_body()
        try:
            if not (data.get('name') or '').strip():
                raise ValidationError('name', 'is required')
            fields = _clean_school_fields(data)
        except ValidationError as e:
            return validation_error_response(e)

        grades = []
        for grade in data.get('grades_offered') or []:
            normalized = normalize_grade(grade)
            if normalized and normalized not in grades:
                grades.append(normalized)

        session_db = get_session()
        try:
            school = School(created_by=current_user.id, **fields)
            school.grades = grades
            session_db.add(school)
            session_db.flush()

            codes, code_errors = create_join_codes(session_db, school, grades)
            session_db.commit()
            invalidate('schools:')
            invalidate('admin:stats')

            logger.info(f"School {school.id} created by {current_user.id}")
            return jsonify({
                'success': True,
                'message': 'School created successfully',
                'school': school.to_dict(),
                'joining_codes': [c.to_dict() for c in codes],
                'warnings': code_errors,
            }), 201
        except Exception as e:
            session_db.rollback()
            logger.error(f"Error creating school: {e}")
            return jsonify({'error': 'Failed to create school'}), 500
        finally:
            session_db.close()

    @admin_bp.route('/schools', methods=['PATCH'])
    @require_role('admin')
    @limiter.limit(RateLimitPresets.WRITE)
    def update_school():
        from course_helpers import normalize_grade

        data = get_json_body()
        school_id = data.get('id')
        if not is_valid_uuid(school_id):
            return jsonify({'error': 'Valid school id is required'}), 400

        try:
            fields = _clean_school_fields(data)
        except ValidationError as e:
            return validation_error_response(e)

        session_db = get_session()
        try:
            school = session_db.query(School).filter_by(id=school_id).first()
            if not school:
                return jsonify({'error': 'School not found'}), 404

            for key, value in fields.items():
                setattr(school, key, value)
            if 'grades_offered' in data:
                school.grades = [g for g in (normalize_grade(x) for x in data.get('grades_offered') or []) if g]

            session_db.commit()
            invalidate('schools:')
            return jsonify({'success': True, 'school': school.to_dict()})
        except Exception as e:
            session_db.rollback()
            logger.error(f"Error updating school {school_id}: {e}")
            return jsonify({'error': 'Failed to update school'}), 500
        finally:
            session_db.close()

    @admin_bp.route('/schools', methods=['DELETE'])
    @require_role('admin')
    @limiter.limit(RateLimitPresets.WRITE)
    def delete_school():
        from school_deletion_handler import delete_school as run_school_delete

        data = get_json_body()
        school_id = data.get('schoolId') or request.args.get('schoolId')
        if not is_valid_uuid(school_id):
            return jsonify({'error': 'Valid schoolId is required'}), 400

        session_db = get_session()
        try:
            result = run_school_delete(session_db, school_id)
            if result.get('not_found'):
                return jsonify({'error': 'School not found'}), 404
            if not result['success']:
                return jsonify(result), 500

            invalidate('schools:')
            invalidate('admin:stats')
            return jsonify(result)
        finally:
            session_db.close()

    # ===== JOINING CODES =====

    @admin_bp.route('/joining-codes', methods=['GET'])
    @require_role('admin')
    def list_joining_codes():
        school_id = request.args.get('school_id')
        session_db = get_session()
        try:
            query = session_db.query(JoinCode, School.name).join(School, School.id == JoinCode.school_id)
            if school_id:
                query = query.filter(JoinCode.school_id == school_id)

            codes = []
            for code, school_name in query.order_by(School.name, JoinCode.grade).all():
                item = code.to_dict()
                item['school_name'] = school_name
                item['is_expired'] = code.is_expired
                codes.append(item)
            return jsonify({'success': True, 'codes': codes, 'count': len(codes)})
        except Exception as e:
            logger.error(f"Error listing joining codes: {e}")
            return jsonify({'error': 'Failed to fetch joining codes'}), 500
        finally:
            session_db.close()

    @admin_bp.route('/joining-codes', methods=['POST'])
    @require_role('admin')
    @limiter.limit(RateLimitPresets.WRITE)
    def generate_joining_codes():
        from joining_code_helpers import create_join_codes

        data = get_json_body()
        school_id = data.get('schoolId')
        grades = [g for g in data.get('grades') or [] if isinstance(g, str) and g.strip()]
        if not is_valid_uuid(school_id) or not grades:
            return jsonify({'error': 'schoolId and at least one grade are required'}), 400

        try:
            max_uses = RequestValidator.validate_int(data.get('maxUses'), 'maxUses', minimum=1)
        except ValidationError as e:
            return validation_error_response(e)

        session_db = get_session()
        try:
            school = session_db.query(School).filter_by(id=school_id).first()
            if not school:
                return jsonify({'error': 'School not found'}), 404

            codes, errors = create_join_codes(
                session_db, school, grades,
                usage_type=data.get('usageType') or 'multiple',
                max_uses=max_uses,
                manual_codes=data.get('manualCodes') or {},
            )
            session_db.commit()
            return jsonify({
                'success': True,
                'codes': [c.to_dict() for c in codes],
                'errors': errors,
                'message': f'{len(codes)} joining code(s) generated',
            }), 201
        except Exception as e:
            session_db.rollback()
            logger.error(f"Error generating joining codes for {school_id}: {e}")
            return jsonify({'error': 'Failed to generate joining codes'}), 500
        finally:
            session_db.close()

    @admin_bp.route('/joining-codes', methods=['PATCH'])
    @require_role('admin')
    @limiter.limit(RateLimitPresets.WRITE)
    def update_joining_code():
        """Toggle {code, isActive}, update {codeId, ...} or regenerate {code, schoolId, grade}"""
        from joining_code_helpers import generate_unique_code, default_expiry
        from course_helpers import parse_datetime

        data = get_json_body()
        session_db = get_session()
        try:
            if 'isActive' in data or 'is_active' in data:
                is_active = data.get('isActive', data.get('is_active'))
                if not data.get('code') or not isinstance(is_active, bool):
                    return jsonify({'error': 'Code and isActive status are required'}), 400
                join_code = session_db.query(JoinCode).filter_by(code=data['code'].strip().upper()).first()
                if not join_code:
                    return jsonify({'error': 'Joining code not found'}), 404
                join_code.is_active = is_active
                session_db.commit()
                return jsonify({'success': True, 'code': join_code.to_dict(),
                                'message': f"Code {'activated' if is_active else 'deactivated'}"})

            if data.get('codeId'):
                join_code = session_db.query(JoinCode).filter_by(id=data['codeId']).first()
                if not join_code:
                    return jsonify({'error': 'Joining code not found'}), 404
                new_code = (data.get('code') or '').strip().upper()
                if new_code and new_code != join_code.code:
                    if session_db.query(JoinCode.id).filter_by(code=new_code).first():
                        return jsonify({'error': f'Code {new_code} already exists'}), 400
                    join_code.code = new_code
                if data.get('usageType') in ('single', 'multiple'):
                    join_code.usage_type = data['usageType']
                if 'maxUses' in data:
                    join_code.max_uses = RequestValidator.validate_int(data['maxUses'], 'maxUses', minimum=1)
                if data.get('expiresAt'):
                    join_code.expires_at = parse_datetime(data['expiresAt'])
                session_db.commit()
                return jsonify({'success': True, 'code': join_code.to_dict(), 'message': 'Code updated successfully'})

            if data.get('code') and data.get('schoolId') and data.get('grade'):
                school = session_db.query(School).filter_by(id=data['schoolId']).first()
                if not school:
                    return jsonify({'error': 'School not found'}), 404
                old = session_db.query(JoinCode).filter_by(code=data['code'].strip().upper()).first()
                if old:
                    old.is_active = False
                max_uses = RequestValidator.validate_int(data.get('maxUses'), 'maxUses', minimum=1)
                new_code = generate_unique_code(session_db, school.name, data['grade'])
                if not new_code:
                    return jsonify({'error': 'Failed to generate new code'}), 500
                replacement = JoinCode(
                    code=new_code,
                    school_id=school.id,
                    grade=data['grade'],
                    usage_type=data.get('usageType') or (old.usage_type if old else 'multiple'),
                    max_uses=max_uses or (old.max_uses if old else None),
                    expires_at=default_expiry(),
                    is_active=True,
                )
                session_db.add(replacement)
                session_db.commit()
                return jsonify({'success': True, 'new_code': new_code, 'message': 'Code regenerated successfully'})

            return jsonify({'error': 'Unrecognized joining code update'}), 400
        except ValidationError as e:
            session_db.rollback()
            return validation_error_response(e)
        except Exception as e:
            session_db.rollback()
            logger.error(f"Error updating joining code: {e}")
            return jsonify({'error': 'Failed to update joining code'}), 500
        finally:
            session_db.close()

    # ===== ACCOUNTS =====

    @admin_bp.route('/create-account', methods=['POST'])
    @require_role('admin')
    @limiter.limit(RateLimitPresets.WRITE)
    def create_account():
        from account_helpers import create_account as create_user_account, AccountError

        try:
            validated = validate_account_data(get_json_body())
        except ValidationError as e:
            return validation_error_response(e)

        session_db = get_session()
        try:
            user, extra = create_user_account(session_db, validated)
            session_db.commit()
            invalidate('schools:')
            invalidate('admin:stats')
            return jsonify({
                'success': True,
                'message': f"{validated['role']} account created successfully",
                'userId': user.id,
                'data': {**user.to_dict(), **extra},
            }), 201
        except AccountError as e:
            session_db.rollback()
            return jsonify({'error': str(e)}), 400
        except Exception as e:
            session_db.rollback()
            logger.error(f"Error creating {validated['role']} account: {e}")
            return jsonify({'error': 'Failed to create account'}), 500
        finally:
            session_db.close()

    @admin_bp.route('/teachers', methods=['GET'])
    @require_role('admin')
    @limiter.limit(RateLimitPresets.READ)
    def list_teachers():
        school_id = request.args.get('school_id')
        search = (request.args.get('search') or '').strip()
        limit, offset = parse_pagination_params()

        session_db = get_session()
        try:
            query = session_db.query(Teacher)
            if school_id:
                query = query.join(TeacherSchool, TeacherSchool.teacher_id == Teacher.user_id).filter(
                    TeacherSchool.school_id == school_id)
            if search:
                like = f"%{search}%"
                query = query.filter(or_(Teacher.full_name.ilike(like), Teacher.email.ilike(like),
                                         Teacher.teacher_code.ilike(like)))

            total = query.count()
            teachers = query.order_by(Teacher.full_name).offset(offset).limit(limit).all()

            user_ids = [t.user_id for t in teachers]
            assignments = {}
            if user_ids:
                rows = session_db.query(TeacherSchool, School.name).join(
                    School, School.id == TeacherSchool.school_id
                ).filter(TeacherSchool.teacher_id.in_(user_ids)).all()
                for link, school_name in rows:
                    item = link.to_dict()
                    item['school_name'] = school_name
                    assignments.setdefault(link.teacher_id, []).append(item)

            data = []
            for teacher in teachers:
                item = teacher.to_dict()
                item['school_assignments'] = assignments.get(teacher.user_id, [])
                data.append(item)
            return jsonify({'success': True, 'teachers': data, 'pagination': pagination_meta(total, limit, offset)})
        except Exception as e:
            logger.error(f"Error listing teachers: {e}")
            return jsonify({'error': 'Failed to fetch teachers'}), 500
        finally:
            session_db.close()

    @admin_bp.route('/students', methods=['GET'])
    @require_role('admin')
    @limiter.limit(RateLimitPresets.READ)
    def list_students():
        school_id = request.args.get('school_id')
        grade = request.args.get('grade')
        search = (request.args.get('search') or '').strip()
        limit, offset = parse_pagination_params()

        session_db = get_session()
        try:
            query = session_db.query(Student, StudentSchool, School.name).outerjoin(
                StudentSchool, StudentSchool.student_id == Student.user_id
            ).outerjoin(School, School.id == StudentSchool.school_id)
            if school_id:
                query = query.filter(StudentSchool.school_id == school_id)
            if grade:
                query = query.filter(StudentSchool.grade == grade)
            if search:
                like = f"%{search}%"
                query = query.filter(or_(Student.full_name.ilike(like), Student.email.ilike(like)))

            total = query.count()
            students = []
            for student, enrolment, school_name in query.order_by(Student.full_name).offset(offset).limit(limit).all():
                item = student.to_dict()
                if enrolment:
                    item['school_id'] = enrolment.school_id
                    item['grade'] = enrolment.grade
                    item['enrolled_at'] = enrolment.enrolled_at.isoformat() if enrolment.enrolled_at else None
                item['school_name'] = school_name
                students.append(item)
            return jsonify({'success': True, 'students': students, 'pagination': pagination_meta(total, limit, offset)})
        except Exception as e:
            logger.error(f"Error listing students: {e}")
            return jsonify({'error': 'Failed to fetch students'}), 500
        finally:
            session_db.close()

    @admin_bp.route('/school-admins', methods=['GET'])
    @require_role('admin')
    def list_school_admins():
        school_id = request.args.get('school_id')
        session_db = get_session()
        try:
            query = session_db.query(SchoolAdmin, School.name).join(School, School.id == SchoolAdmin.school_id)
            if school_id:
                query = query.filter(SchoolAdmin.school_id == school_id)
            admins = []
            for admin, school_name in query.order_by(School.name).all():
                item = admin.to_dict()
                item['school_name'] = school_name
                admins.append(item)
            return jsonify({'success': True, 'school_admins': admins, 'count': len(admins)})
        except Exception as e:
            logger.error(f"Error listing school admins: {e}")
            return jsonify({'error': 'Failed to fetch school admins'}), 500
        finally:
            session_db.close()

    @admin_bp.route('/stats', methods=['GET'])
    @require_role('admin')
    def platform_stats():
        def fetch():
            session_db = get_session()
            try:
                return {
                    'total_schools': session_db.query(School).count(),
                    'active_schools': session_db.query(School).filter(School.is_active == True).count(),
                    'total_teachers': session_db.query(User).filter(User.role == ROLE_TEACHER).count(),
                    'total_students': session_db.query(User).filter(User.role == ROLE_STUDENT).count(),
                    'total_courses': session_db.query(Course).count(),
                    'published_courses': session_db.query(Course).filter(Course.is_published == True).count(),
                    'pending_leaves': session_db.query(TeacherLeave).filter(
                        TeacherLeave.status == LeaveStatusEnum.PENDING).count(),
                    'pending_password_resets': session_db.query(PasswordResetRequest).filter_by(status='pending').count(),
                }
            finally:
                session_db.close()

        try:
            return jsonify({'success': True, 'stats': get_or_set('admin:stats', fetch, CacheTTL.MEDIUM)})
        except Exception as e:
            logger.error(f"Error loading platform stats: {e}")
            return jsonify({'error': 'Failed to load statistics'}), 500

    # ===== PASSWORD RESET REQUESTS =====

    @admin_bp.route('/password-reset-requests', methods=['GET'])
    @require_role('admin')
    def list_password_reset_requests():
        from password_reset_handler import serialize_reset_requests

        status = request.args.get('status')
        session_db = get_session()
        try:
            query = session_db.query(PasswordResetRequest)
            if status:
                query = query.filter(PasswordResetRequest.status == status)
            requests_ = query.order_by(PasswordResetRequest.requested_at.desc()).all()
            data = serialize_reset_requests(session_db, requests_)
            return jsonify({'success': True, 'requests': data, 'count': len(data)})
        except Exception as e:
            logger.error(f"Error listing password reset requests: {e}")
            return jsonify({'error': 'Failed to fetch password reset requests'}), 500
        finally:
            session_db.close()

    @admin_bp.route('/password-reset-requests', methods=['PATCH'])
    @require_role('admin')
    @limiter.limit(RateLimitPresets.WRITE)
    def review_password_reset_request():
        from password_reset_handler import review_reset_request

        data = get_json_body()
        if not data.get('id') or not data.get('status'):
            return jsonify({'error': 'id and status are required'}), 400

        session_db = get_session()
        try:
            reset_request = session_db.query(PasswordResetRequest).filter_by(id=data['id']).first()
            if not reset_request:
                return jsonify({'error': 'Request not found'}), 404

            success, message, temp_password = review_reset_request(
                session_db, reset_request, data['status'],
                approver_id=data.get('approved_by') or current_user.id,
                notes=data.get('notes'),
            )
            if not success:
                session_db.rollback()
                return jsonify({'error': message}), 400

            session_db.commit()
            invalidate('admin:stats')
            response = {'success': True, 'message': message, 'request': reset_request.to_dict()}
            if temp_password:
                response['temp_password'] = temp_password
            return jsonify(response)
        except Exception as e:
            session_db.rollback()
            logger.error(f"Error reviewing password reset request {data.get('id')}: {e}")
            return jsonify({'error': 'Failed to update password reset request'}), 500
        finally:
            session_db.close()

    # ===== LEAVES AND ATTENDANCE =====

    @admin_bp.route('/leaves', methods=['GET'])
    @require_role('admin')
    def list_leaves():
        from leave_helpers import serialize_leaves

        status = request.args.get('status')
        school_id = request.args.get('school_id')
        session_db = get_session()
        try:
            query = session_db.query(TeacherLeave)
            if status:
                try:
                    query = query.filter(TeacherLeave.status == LeaveStatusEnum(status))
                except ValueError:
                    return jsonify({'error': 'Invalid status'}), 400
            if school_id:
                query = query.filter(TeacherLeave.school_id == school_id)
            leaves = query.order_by(TeacherLeave.created_at.desc()).all()
            return jsonify({'success': True, 'leaves': serialize_leaves(session_db, leaves), 'count': len(leaves)})
        except Exception as e:
            logger.error(f"Error listing leaves: {e}")
            return jsonify({'error': 'Failed to fetch leaves'}), 500
        finally:
            session_db.close()

    @admin_bp.route('/teacher-attendance', methods=['GET'])
    @require_role('admin')
    def teacher_attendance():
        from attendance_helpers import query_attendance, serialize_attendance_rows

        try:
            start_date = RequestValidator.validate_date(request.args.get('start_date'), 'start_date', required=False)
            end_date = RequestValidator.validate_date(request.args.get('end_date'), 'end_date', required=False)
        except ValidationError as e:
            return validation_error_response(e)

        school_id = request.args.get('school_id')
        session_db = get_session()
        try:
            rows = query_attendance(
                session_db,
                school_ids=[school_id] if school_id else None,
                user_id=request.args.get('teacher_id'),
                start_date=start_date,
                end_date=end_date,
            ).all()
            records = serialize_attendance_rows(rows)
            return jsonify({'success': True, 'attendance': records, 'count': len(records)})
        except Exception as e:
            logger.error(f"Error listing teacher attendance: {e}")
            return jsonify({'error': 'Failed to fetch attendance'}), 500
        finally:
            session_db.close()

    # ===== NOTIFICATIONS =====

    @admin_bp.route('/notifications', methods=['GET'])
    @require_role('admin')
    def sent_notifications():
        from notification_helpers import list_sent_notifications

        session_db = get_session()
        try:
            data = list_sent_notifications(session_db, current_user.id)
            return jsonify({'success': True, 'notifications': data, 'count': len(data)})
        except Exception as e:
            logger.error(f"Error listing sent notifications: {e}")
            return jsonify({'error': 'Failed to fetch notifications'}), 500
        finally:
            session_db.close()

    @admin_bp.route('/notifications', methods=['POST'])
    @require_role('admin')
    @limiter.limit(RateLimitPresets.WRITE)
    def send_notifications():
        from notification_routes import send_from_request

        return send_from_request(
            allowed_roles=('admin', 'school_admin', 'teacher', 'student'),
            school_id=get_json_body().get('school_id'),
        )

    # Course management lives in its own module
    from course_routes import register_course_routes
    register_course_routes(admin_bp)

    return admin_bp

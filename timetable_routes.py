"""
Timetable Routes
Periods, rooms and weekly class schedules for a school admin's school
"""

from flask import request, jsonify
from flask_login import current_user
import logging

from db_single import get_session
from extensions import limiter, RateLimitPresets
from auth_helpers import require_role, get_json_body, validation_error_response, get_admin_school_id
from validators import ValidationError

logger = logging.getLogger(__name__)


def _owned(session_db, model, row_id, school_id, label):
    """(row, error response) for a row that must belong to the admin's school"""
    row = session_db.query(model).filter_by(id=row_id).first()
    if not row:
        return None, (jsonify({'error': f'{label} not found'}), 404)
    if row.school_id != school_id:
        return None, (jsonify({'error': f'Unauthorized: {label} does not belong to your school'}), 403)
    return row, None


def register_timetable_routes(school_admin_bp, no_school):
    """Register period, room and schedule routes on the school admin blueprint"""

    # ===== PERIODS =====

    @school_admin_bp.route('/periods', methods=['GET'])
    @require_role('school_admin')
    def list_periods():
        from timetable_models import Period

        session_db = get_session()
        try:
            school_id = get_admin_school_id(session_db)
            if not school_id:
                return no_school()
            periods = session_db.query(Period).filter_by(school_id=school_id).order_by(Period.period_number).all()
            return jsonify({'periods': [p.to_dict() for p in periods]})
        except Exception as e:
            logger.error(f"Error listing periods for school admin {current_user.id}: {e}")
            return jsonify({'error': 'Failed to fetch periods'}), 500
        finally:
            session_db.close()

    @school_admin_bp.route('/periods', methods=['POST'])
    @require_role('school_admin')
    @limiter.limit(RateLimitPresets.WRITE)
    def create_period():
        from timetable_models import Period
        from timetable_helpers import validate_period_data

        data = get_json_body()
        session_db = get_session()
        try:
            school_id = get_admin_school_id(session_db)
            if not school_id:
                return no_school()

            validated = validate_period_data(data)
            if session_db.query(Period.id).filter_by(
                    school_id=school_id, period_number=validated['period_number']).first():
                return jsonify({'error': f"Period {validated['period_number']} already exists"}), 400

            period = Period(school_id=school_id, **validated)
            session_db.add(period)
            session_db.commit()
            logger.info(f"Period {period.period_number} created for school {school_id}")
            return jsonify({'period': period.to_dict()}), 201
        except ValidationError as e:
            session_db.rollback()
            return validation_error_response(e)
        except Exception as e:
            session_db.rollback()
            logger.error(f"Error creating period: {e}")
            return jsonify({'error': 'Failed to create period'}), 500
        finally:
            session_db.close()

    @school_admin_bp.route('/periods/<period_id>', methods=['PUT'])
    @require_role('school_admin')
    @limiter.limit(RateLimitPresets.WRITE)
    def update_period(period_id):
        """Replace a period's number and times; active schedules on it take the new times"""
        from timetable_models import Period, ClassSchedule
        from timetable_helpers import validate_period_data

        data = get_json_body()
        session_db = get_session()
        try:
            school_id = get_admin_school_id(session_db)
            if not school_id:
                return no_school()
            period, error = _owned(session_db, Period, period_id, school_id, 'Period')
            if error:
                return error

            validated = validate_period_data(data)
            if session_db.query(Period.id).filter(
                    Period.school_id == school_id,
                    Period.period_number == validated['period_number'],
                    Period.id != period.id).first():
                return jsonify({'error': f"Period {validated['period_number']} already exists"}), 400

            for key, value in validated.items():
                setattr(period, key, value)
            session_db.query(ClassSchedule).filter_by(period_id=period.id, is_active=True).update(
                {ClassSchedule.start_time: period.start_time, ClassSchedule.end_time: period.end_time},
                synchronize_session=False)
            session_db.commit()
            return jsonify({'period': period.to_dict()})
        except ValidationError as e:
            session_db.rollback()
            return validation_error_response(e)
        except Exception as e:
            session_db.rollback()
            logger.error(f"Error updating period {period_id}: {e}")
            return jsonify({'error': 'Failed to update period'}), 500
        finally:
            session_db.close()

    @school_admin_bp.route('/periods/<period_id>', methods=['DELETE'])
    @require_role('school_admin')
    @limiter.limit(RateLimitPresets.WRITE)
    def delete_period(period_id):
        from timetable_models import Period, ClassSchedule
        from timetable_helpers import active_schedule_count

        session_db = get_session()
        try:
            school_id = get_admin_school_id(session_db)
            if not school_id:
                return no_school()
            period, error = _owned(session_db, Period, period_id, school_id, 'Period')
            if error:
                return error

            if active_schedule_count(session_db, period_id=period.id):
                return jsonify({
                    'error': 'Cannot delete period',
                    'details': 'Period is assigned to active schedules. Please remove assignments first.',
                }), 400

            session_db.query(ClassSchedule).filter_by(period_id=period.id).update(
                {ClassSchedule.period_id: None}, synchronize_session=False)
            session_db.delete(period)
            session_db.commit()
            logger.info(f"Period {period_id} deleted by {current_user.id}")
            return jsonify({'success': True})
        except Exception as e:
            session_db.rollback()
            logger.error(f"Error deleting period {period_id}: {e}")
            return jsonify({'error': 'Failed to delete period'}), 500
        finally:
            session_db.close()

    # ===== ROOMS =====

    @school_admin_bp.route('/rooms', methods=['GET'])
    @require_role('school_admin')
    def list_rooms():
        from timetable_models import Room

        session_db = get_session()
        try:
            school_id = get_admin_school_id(session_db)
            if not school_id:
                return no_school()
            rooms = session_db.query(Room).filter_by(school_id=school_id).order_by(Room.room_number).all()
            return jsonify({'rooms': [r.to_dict() for r in rooms]})
        except Exception as e:
            logger.error(f"Error listing rooms for school admin {current_user.id}: {e}")
            return jsonify({'error': 'Failed to fetch rooms'}), 500
        finally:
            session_db.close()

    @school_admin_bp.route('/rooms', methods=['POST'])
    @require_role('school_admin')
    @limiter.limit(RateLimitPresets.WRITE)
    def create_room():
        from timetable_models import Room
        from timetable_helpers import validate_room_data

        data = get_json_body()
        session_db = get_session()
        try:
            school_id = get_admin_school_id(session_db)
            if not school_id:
                return no_school()

            validated = validate_room_data(data)
            if session_db.query(Room.id).filter_by(school_id=school_id, room_number=validated['room_number']).first():
                return jsonify({'error': f"Room {validated['room_number']} already exists"}), 400

            room = Room(school_id=school_id, **validated)
            session_db.add(room)
            session_db.commit()
            return jsonify({'room': room.to_dict()}), 201
        except ValidationError as e:
            session_db.rollback()
            return validation_error_response(e)
        except Exception as e:
            session_db.rollback()
            logger.error(f"Error creating room: {e}")
            return jsonify({'error': 'Failed to create room'}), 500
        finally:
            session_db.close()

    @school_admin_bp.route('/rooms/<room_id>', methods=['PUT'])
    @require_role('school_admin')
    @limiter.limit(RateLimitPresets.WRITE)
    def update_room(room_id):
        from timetable_models import Room
        from timetable_helpers import validate_room_data

        data = get_json_body()
        session_db = get_session()
        try:
            school_id = get_admin_school_id(session_db)
            if not school_id:
                return no_school()
            room, error = _owned(session_db, Room, room_id, school_id, 'Room')
            if error:
                return error

            validated = validate_room_data(data)
            if session_db.query(Room.id).filter(
                    Room.school_id == school_id,
                    Room.room_number == validated['room_number'],
                    Room.id != room.id).first():
                return jsonify({'error': f"Room {validated['room_number']} already exists"}), 400

            for key, value in validated.items():
                setattr(room, key, value)
            session_db.commit()
            return jsonify({'room': room.to_dict()})
        except ValidationError as e:
            session_db.rollback()
            return validation_error_response(e)
        except Exception as e:
            session_db.rollback()
            logger.error(f"Error updating room {room_id}: {e}")
            return jsonify({'error': 'Failed to update room'}), 500
        finally:
            session_db.close()

    @school_admin_bp.route('/rooms/<room_id>', methods=['DELETE'])
    @require_role('school_admin')
    @limiter.limit(RateLimitPresets.WRITE)
    def delete_room(room_id):
        from timetable_models import Room, ClassSchedule
        from timetable_helpers import active_schedule_count

        session_db = get_session()
        try:
            school_id = get_admin_school_id(session_db)
            if not school_id:
                return no_school()
            room, error = _owned(session_db, Room, room_id, school_id, 'Room')
            if error:
                return error

            if active_schedule_count(session_db, room_id=room.id):
                return jsonify({
                    'error': 'Cannot delete room',
                    'details': 'Room is assigned to active schedules. Please remove assignments first.',
                }), 400

            session_db.query(ClassSchedule).filter_by(room_id=room.id).update(
                {ClassSchedule.room_id: None}, synchronize_session=False)
            session_db.delete(room)
            session_db.commit()
            logger.info(f"Room {room_id} deleted by {current_user.id}")
            return jsonify({'success': True})
        except Exception as e:
            session_db.rollback()
            logger.error(f"Error deleting room {room_id}: {e}")
            return jsonify({'error': 'Failed to delete room'}), 500
        finally:
            session_db.close()

    # ===== SCHEDULES =====

    @school_admin_bp.route('/schedules', methods=['GET'])
    @require_role('school_admin')
    def list_schedules():
        """Active schedules, filterable by ?day=, ?grade=, ?teacherId=, ?classId="""
        from timetable_models import ClassSchedule, DayOfWeekEnum
        from timetable_helpers import serialize_schedules, sort_schedules
        from course_helpers import normalize_grade

        session_db = get_session()
        try:
            school_id = get_admin_school_id(session_db)
            if not school_id:
                return no_school()

            query = session_db.query(ClassSchedule).filter_by(school_id=school_id, is_active=True)
            day = request.args.get('day')
            if day:
                try:
                    query = query.filter(ClassSchedule.day_of_week == DayOfWeekEnum(day.strip().capitalize()))
                except ValueError:
                    return jsonify({'error': 'Invalid day'}), 400
            if request.args.get('grade'):
                query = query.filter(ClassSchedule.grade == normalize_grade(request.args['grade']))
            if request.args.get('teacherId'):
                query = query.filter(ClassSchedule.teacher_id == request.args['teacherId'])
            if request.args.get('classId'):
                query = query.filter(ClassSchedule.class_id == request.args['classId'])

            schedules = sort_schedules(query.all())
            return jsonify({'schedules': serialize_schedules(session_db, schedules)})
        except Exception as e:
            logger.error(f"Error listing schedules for school admin {current_user.id}: {e}")
            return jsonify({'error': 'Failed to fetch schedules'}), 500
        finally:
            session_db.close()

    @school_admin_bp.route('/schedules', methods=['POST'])
    @require_role('school_admin')
    @limiter.limit(RateLimitPresets.WRITE)
    def create_schedule():
        from timetable_models import ClassSchedule
        from timetable_helpers import validate_schedule_data, find_schedule_conflict, serialize_schedules

        data = get_json_body()
        session_db = get_session()
        try:
            school_id = get_admin_school_id(session_db)
            if not school_id:
                return no_school()

            fields = validate_schedule_data(session_db, school_id, data)
            conflict = find_schedule_conflict(session_db, school_id, fields)
            if conflict:
                return jsonify({'error': conflict[0], 'details': conflict[1]}), 400

            schedule = ClassSchedule(school_id=school_id, created_by=current_user.id, is_active=True, **fields)
            session_db.add(schedule)
            session_db.commit()
            return jsonify({'schedule': serialize_schedules(session_db, [schedule])[0]}), 201
        except ValidationError as e:
            session_db.rollback()
            return validation_error_response(e)
        except Exception as e:
            session_db.rollback()
            logger.error(f"Error creating schedule: {e}")
            return jsonify({'error': 'Failed to create schedule'}), 500
        finally:
            session_db.close()

    @school_admin_bp.route('/schedules/<schedule_id>', methods=['PUT'])
    @require_role('school_admin')
    @limiter.limit(RateLimitPresets.WRITE)
    def update_schedule(schedule_id):
        """Partial update; the result is re-checked for clashes with other active slots"""
        from timetable_models import ClassSchedule
        from timetable_helpers import (
            schedule_payload, validate_schedule_data, find_schedule_conflict, serialize_schedules
        )

        data = get_json_body()
        session_db = get_session()
        try:
            school_id = get_admin_school_id(session_db)
            if not school_id:
                return no_school()
            schedule, error = _owned(session_db, ClassSchedule, schedule_id, school_id, 'Schedule')
            if error:
                return error

            fields = validate_schedule_data(session_db, school_id, schedule_payload(schedule, data))
            if 'is_active' in data:
                if not isinstance(data['is_active'], bool):
                    raise ValidationError('is_active', 'must be true or false')
                fields['is_active'] = data['is_active']

            if fields.get('is_active', schedule.is_active):
                conflict = find_schedule_conflict(session_db, school_id, fields, exclude_id=schedule.id)
                if conflict:
                    return jsonify({'error': conflict[0], 'details': conflict[1]}), 400

            for key, value in fields.items():
                setattr(schedule, key, value)
            session_db.commit()
            return jsonify({'schedule': serialize_schedules(session_db, [schedule])[0]})
        except ValidationError as e:
            session_db.rollback()
            return validation_error_response(e)
        except Exception as e:
            session_db.rollback()
            logger.error(f"Error updating schedule {schedule_id}: {e}")
            return jsonify({'error': 'Failed to update schedule'}), 500
        finally:
            session_db.close()

    @school_admin_bp.route('/schedules/<schedule_id>', methods=['DELETE'])
    @require_role('school_admin')
    @limiter.limit(RateLimitPresets.WRITE)
    def delete_schedule(schedule_id):
        """Soft delete: the slot is deactivated and frees its teacher, room and period"""
        from timetable_models import ClassSchedule

        session_db = get_session()
        try:
            school_id = get_admin_school_id(session_db)
            if not school_id:
                return no_school()
            schedule, error = _owned(session_db, ClassSchedule, schedule_id, school_id, 'Schedule')
            if error:
                return error

            schedule.is_active = False
            session_db.commit()
            return jsonify({'message': 'Schedule deleted successfully'})
        except Exception as e:
            session_db.rollback()
            logger.error(f"Error deleting schedule {schedule_id}: {e}")
            return jsonify({'error': 'Failed to delete schedule'}), 500
        finally:
            session_db.close()

    @school_admin_bp.route('/schedules/sync-to-teachers', methods=['POST'])
    @require_role('school_admin')
    @limiter.limit(RateLimitPresets.WRITE)
    def sync_schedules():
        """Create the teacher class assignments the teacher dashboard reads from"""
        from timetable_helpers import sync_schedules_to_teachers

        session_db = get_session()
        try:
            school_id = get_admin_school_id(session_db)
            if not school_id:
                return no_school()

            result = sync_schedules_to_teachers(session_db, school_id)
            session_db.commit()
            if not result['total']:
                message = 'No active schedules found to sync'
            else:
                message = f"Successfully synced {result['synced']} schedule(s) to teacher dashboard"
            return jsonify({'success': True, 'message': message, **result})
        except Exception as e:
            session_db.rollback()
            logger.error(f"Error syncing schedules to teachers: {e}")
            return jsonify({'error': 'Failed to sync schedules to teachers'}), 500
        finally:
            session_db.close()

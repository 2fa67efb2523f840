"""
Course Management Routes
Course listing, nested create/update with temporary-id reconciliation,
publishing, access, versions and cascading delete
"""

from flask import request, jsonify
from flask_login import current_user
from sqlalchemy import or_
import logging

from db_single import get_session
from course_models import Course, CourseAccess, Chapter, ChapterContent, CourseVersion
from extensions import limiter, RateLimitPresets
from auth_helpers import require_role, get_json_body, validation_error_response
from validators import ValidationError
from pagination_helpers import (
    parse_pagination_params, pagination_meta, wants_cursor, parse_cursor_limit, apply_cursor, cursor_page
)
from cache_helpers import add_cache_headers, invalidate
import course_helpers

logger = logging.getLogger(__name__)


def _course_rows(session_db, courses):
    ids = [c.id for c in courses]
    access = course_helpers.get_course_access_map(session_db, ids)
    counts = course_helpers.get_content_counts(session_db, ids)
    rows = []
    for course in courses:
        item = course.to_dict()
        item['course_access'] = access.get(course.id, [])
        item['chapter_count'] = counts[course.id]['chapters']
        item['video_count'] = counts[course.id]['videos']
        item['material_count'] = counts[course.id]['materials']
        item['assignment_count'] = counts[course.id]['assignments']
        item['enrolled_students'] = counts[course.id]['students']
        rows.append(item)
    return rows


def register_course_routes(admin_bp):
    """Add course management routes to the admin blueprint"""

    @admin_bp.route('/courses', methods=['GET'])
    @require_role('admin')
    @limiter.limit(RateLimitPresets.READ)
    def list_courses():
        search = (request.args.get('search') or '').strip()
        status = request.args.get('status')
        school_id = request.args.get('school_id')

        session_db = get_session()
        try:
            query = session_db.query(Course)
            if search:
                like = f"%{search}%"
                query = query.filter(or_(Course.name.ilike(like), Course.title.ilike(like),
                                         Course.description.ilike(like)))
            if status == 'Published':
                query = query.filter(Course.is_published == True)
            elif status:
                query = query.filter(Course.is_published == False, Course.status == status)
            if school_id:
                visible = session_db.query(CourseAccess.course_id).filter(CourseAccess.school_id == school_id)
                query = query.filter(Course.id.in_(visible))

            total = query.count()
            if wants_cursor():
                limit = parse_cursor_limit()
                courses = apply_cursor(query, Course, request.args.get('cursor'), limit).all()
                courses, pagination = cursor_page(courses, limit)
                pagination['total'] = total
            else:
                limit, offset = parse_pagination_params()
                courses = query.order_by(Course.created_at.desc(), Course.id.desc()).offset(offset).limit(limit).all()
                pagination = pagination_meta(total, limit, offset)

            response = jsonify({
                'success': True,
                'courses': _course_rows(session_db, courses),
                'pagination': pagination,
            })
            return add_cache_headers(response)
        except Exception as e:
            logger.error(f"Error listing courses: {e}")
            return jsonify({'error': 'Failed to fetch courses'}), 500
        finally:
            session_db.close()

    @admin_bp.route('/courses/<course_id>', methods=['GET'])
    @require_role('admin')
    def get_course(course_id):
        session_db = get_session()
        try:
            course = session_db.query(Course).filter_by(id=course_id).first()
            if not course:
                return jsonify({'error': 'Course not found'}), 404
            return jsonify({'success': True, 'course': course_helpers.serialize_course_tree(session_db, course)})
        except Exception as e:
            logger.error(f"Error loading course {course_id}: {e}")
            return jsonify({'error': 'Failed to fetch course'}), 500
        finally:
            session_db.close()

    @admin_bp.route('/courses/<course_id>/chapters', methods=['GET'])
    @require_role('admin')
    def get_course_chapters(course_id):
        session_db = get_session()
        try:
            if not session_db.query(Course.id).filter_by(id=course_id).first():
                return jsonify({'error': 'Course not found'}), 404

            chapters = session_db.query(Chapter).filter_by(course_id=course_id).order_by(Chapter.order_index).all()
            contents = {}
            if chapters:
                for content in session_db.query(ChapterContent).filter(
                        ChapterContent.chapter_id.in_([c.id for c in chapters])).order_by(ChapterContent.order_index):
                    contents.setdefault(content.chapter_id, []).append(content.to_dict())

            data = []
            for chapter in chapters:
                item = chapter.to_dict()
                item['contents'] = contents.get(chapter.id, [])
                data.append(item)
            return jsonify({'success': True, 'chapters': data, 'count': len(data)})
        except Exception as e:
            logger.error(f"Error loading chapters for course {course_id}: {e}")
            return jsonify({'error': 'Failed to fetch chapters'}), 500
        finally:
            session_db.close()

    @admin_bp.route('/courses', methods=['POST'])
    @require_role('admin')
    @limiter.limit(RateLimitPresets.WRITE)
    def create_course():
        """Create a course with its nested structure in one transaction"""
        data = get_json_body()
        session_db = get_session()
        try:
            course, id_map = course_helpers.create_course(session_db, data, created_by=current_user.id)
            session_db.commit()
            invalidate('schools:')
            invalidate('admin:stats')

            return jsonify({
                'success': True,
                'message': 'Course created successfully',
                'course': course_helpers.serialize_course_tree(session_db, course),
                'chapter_id_map': id_map.as_dict(),
            }), 201
        except ValidationError as e:
            session_db.rollback()
            return validation_error_response(e)
        except Exception as e:
            session_db.rollback()
            logger.error(f"Error creating course: {e}")
            return jsonify({'error': 'Failed to create course'}), 500
        finally:
            session_db.close()

    @admin_bp.route('/courses/<course_id>', methods=['PATCH'])
    @require_role('admin')
    @limiter.limit(RateLimitPresets.WRITE)
    def update_course(course_id):
        data = get_json_body()
        session_db = get_session()
        try:
            course = session_db.query(Course).filter_by(id=course_id).first()
            if not course:
                return jsonify({'error': 'Course not found'}), 404

            id_map, summary = course_helpers.update_course(session_db, course, data)
            version = course_helpers.create_course_version(
                session_db, course,
                changes_summary=data.get('changes_summary') or 'Course updated',
                created_by=current_user.id,
            )
            session_db.commit()
            invalidate('schools:')

            return jsonify({
                'success': True,
                'message': 'Course updated successfully',
                'course': course_helpers.serialize_course_tree(session_db, course),
                'chapter_id_map': id_map.as_dict(),
                'summary': summary,
                'version_number': version.version_number,
            })
        except ValidationError as e:
            session_db.rollback()
            return validation_error_response(e)
        except Exception as e:
            session_db.rollback()
            logger.error(f"Error updating course {course_id}: {e}")
            return jsonify({'error': 'Failed to update course'}), 500
        finally:
            session_db.close()

    @admin_bp.route('/courses/<course_id>', methods=['DELETE'])
    @require_role('admin')
    @limiter.limit(RateLimitPresets.WRITE)
    def delete_course(course_id):
        from course_deletion_handler import delete_course as run_course_delete

        session_db = get_session()
        try:
            result = run_course_delete(session_db, course_id)
            if result.get('not_found'):
                return jsonify({'error': 'Course not found'}), 404
            if not result['success']:
                return jsonify(result), 500

            invalidate('schools:')
            invalidate('admin:stats')
            return jsonify({
                'success': True,
                'message': f"Course \"{result['course_name']}\" deleted successfully",
                'deletion_results': result['deletion_results'],
                'errors': result['errors'],
            })
        finally:
            session_db.close()

    @admin_bp.route('/courses/<course_id>/publish', methods=['PATCH'])
    @require_role('admin')
    @limiter.limit(RateLimitPresets.WRITE)
    def publish_course(course_id):
        data = get_json_body()
        if not isinstance(data.get('is_published'), bool):
            return jsonify({'error': 'is_published must be a boolean'}), 400

        session_db = get_session()
        try:
            course = session_db.query(Course).filter_by(id=course_id).first()
            if not course:
                return jsonify({'error': 'Course not found'}), 404

            course_helpers.set_publish_state(course, data['is_published'])
            session_db.commit()
            invalidate('admin:stats')
            return jsonify({
                'success': True,
                'message': 'Course published' if course.is_published else 'Course unpublished',
                'course': course.to_dict(),
            })
        except Exception as e:
            session_db.rollback()
            logger.error(f"Error publishing course {course_id}: {e}")
            return jsonify({'error': 'Failed to update publish state'}), 500
        finally:
            session_db.close()

    @admin_bp.route('/courses/<course_id>/access', methods=['GET'])
    @require_role('admin')
    def get_course_access(course_id):
        session_db = get_session()
        try:
            if not session_db.query(Course.id).filter_by(id=course_id).first():
                return jsonify({'error': 'Course not found'}), 404
            access = course_helpers.get_course_access_map(session_db, [course_id])[course_id]
            return jsonify({'success': True, 'course_access': access, 'count': len(access)})
        except Exception as e:
            logger.error(f"Error loading access for course {course_id}: {e}")
            return jsonify({'error': 'Failed to fetch course access'}), 500
        finally:
            session_db.close()

    @admin_bp.route('/courses/<course_id>/access', methods=['PUT'])
    @require_role('admin')
    @limiter.limit(RateLimitPresets.WRITE)
    def replace_course_access(course_id):
        data = get_json_body()
        school_ids = course_helpers.clean_school_ids(data.get('school_ids'))
        grades = course_helpers.clean_grades(data.get('grades'))
        if not school_ids or not grades:
            return jsonify({'error': 'Validation failed', 'details': 'course_access: At least one school and one grade are required'}), 400

        session_db = get_session()
        try:
            if not session_db.query(Course.id).filter_by(id=course_id).first():
                return jsonify({'error': 'Course not found'}), 404
            invalid = course_helpers.find_invalid_school_ids(session_db, school_ids)
            if invalid:
                return jsonify({'error': 'Validation failed', 'details': f"school_ids: Invalid school IDs: {', '.join(invalid)}"}), 400

            entries = course_helpers.replace_course_access(session_db, course_id, school_ids, grades)
            session_db.commit()
            invalidate('schools:')
            return jsonify({
                'success': True,
                'course_access': [{'school_id': s, 'grade': g} for s, g in entries],
                'count': len(entries),
            })
        except Exception as e:
            session_db.rollback()
            logger.error(f"Error replacing access for course {course_id}: {e}")
            return jsonify({'error': 'Failed to update course access'}), 500
        finally:
            session_db.close()

    @admin_bp.route('/courses/<course_id>/versions', methods=['GET'])
    @require_role('admin')
    def list_course_versions(course_id):
        include_snapshot = request.args.get('include_snapshot', '').lower() == 'true'
        session_db = get_session()
        try:
            if not session_db.query(Course.id).filter_by(id=course_id).first():
                return jsonify({'error': 'Course not found'}), 404
            versions = session_db.query(CourseVersion).filter_by(course_id=course_id).order_by(
                CourseVersion.version_number.desc()).all()
            return jsonify({
                'success': True,
                'versions': [v.to_dict(include_snapshot=include_snapshot) for v in versions],
                'count': len(versions),
            })
        except Exception as e:
            logger.error(f"Error listing versions for course {course_id}: {e}")
            return jsonify({'error': 'Failed to fetch versions'}), 500
        finally:
            session_db.close()

    @admin_bp.route('/courses/<course_id>/versions', methods=['POST'])
    @require_role('admin')
    @limiter.limit(RateLimitPresets.WRITE)
    def create_course_version(course_id):
        data = get_json_body()
        session_db = get_session()
        try:
            course = session_db.query(Course).filter_by(id=course_id).first()
            if not course:
                return jsonify({'error': 'Course not found'}), 404
            version = course_helpers.create_course_version(
                session_db, course,
                changes_summary=data.get('changes_summary'),
                created_by=current_user.id,
            )
            session_db.commit()
            return jsonify({'success': True, 'version': version.to_dict()}), 201
        except Exception as e:
            session_db.rollback()
            logger.error(f"Error creating version for course {course_id}: {e}")
            return jsonify({'error': 'Failed to create version'}), 500
        finally:
            session_db.close()

"""
Course Deletion Handler
Removes a course and every dependent row in foreign-key order
"""

from sqlalchemy.orm import Session
import logging

logger = logging.getLogger(__name__)


def _course_steps(course_id, chapter_ids, assignment_ids):
    """(table name, query builder) pairs in the order they must be deleted"""
    from course_models import (
        Course, CourseAccess, Chapter, ChapterContent, Assignment, AssignmentQuestion,
        CourseSchedule, CourseVersion
    )
    from student_models import StudentCourse, CourseProgress, Submission

    return [
        ('assignment_questions', lambda s: s.query(AssignmentQuestion).filter(
            AssignmentQuestion.assignment_id.in_(assignment_ids)) if assignment_ids else None),
        ('submissions', lambda s: s.query(Submission).filter(
            Submission.assignment_id.in_(assignment_ids)) if assignment_ids else None),
        ('assignments', lambda s: s.query(Assignment).filter_by(course_id=course_id)),
        ('chapter_contents', lambda s: s.query(ChapterContent).filter(
            ChapterContent.chapter_id.in_(chapter_ids)) if chapter_ids else None),
        ('course_schedules', lambda s: s.query(CourseSchedule).filter_by(course_id=course_id)),
        ('course_progress', lambda s: s.query(CourseProgress).filter_by(course_id=course_id)),
        ('chapters', lambda s: s.query(Chapter).filter_by(course_id=course_id)),
        ('course_access', lambda s: s.query(CourseAccess).filter_by(course_id=course_id)),
        ('student_courses', lambda s: s.query(StudentCourse).filter_by(course_id=course_id)),
        ('course_versions', lambda s: s.query(CourseVersion).filter_by(course_id=course_id)),
        ('courses', lambda s: s.query(Course).filter_by(id=course_id)),
    ]


def delete_course(session: Session, course_id: str) -> dict:
    """
    Delete a course with its assignments, chapters, contents, schedules,
    progress, access rows, enrolments and versions.

    Runs inside the caller's transaction and commits on success. When a step
    fails the transaction is rolled back and the counts gathered so far are
    returned with the error.

    Args:
        session: Database session
        course_id: UUID of the course

    Returns:
        dict: success, deletion_results {table: rows}, errors, course_name
    """
    from course_models import Course, Chapter, Assignment

    course = session.query(Course).filter_by(id=course_id).first()
    if not course:
        return {'success': False, 'not_found': True, 'error': 'Course not found'}

    course_name = course.name
    chapter_ids = [r[0] for r in session.query(Chapter.id).filter_by(course_id=course_id).all()]
    assignment_ids = [r[0] for r in session.query(Assignment.id).filter_by(course_id=course_id).all()]

    deletion_results = {}
    errors = []

    for table, build_query in _course_steps(course_id, chapter_ids, assignment_ids):
        try:
            query = build_query(session)
            deletion_results[table] = query.delete(synchronize_session=False) if query is not None else 0
        except Exception as e:
            session.rollback()
            errors.append(f"{table}: {str(e)}")
            logger.error(f"Course delete failed at {table} for course {course_id}: {str(e)}")
            return {
                'success': False,
                'error': f'Failed to delete {table}',
                'deletion_results': deletion_results,
                'errors': errors,
            }

    session.commit()

    # Uploaded files live with an external storage service; nothing to remove here
    content_count = deletion_results.get('chapter_contents', 0)
    if content_count:
        logger.info(f"Course {course_id} had {content_count} content items; storage cleanup skipped")

    logger.info(f"Deleted course {course_id} ({course_name}): {deletion_results}")
    return {
        'success': True,
        'course_name': course_name,
        'deletion_results': deletion_results,
        'errors': errors,
    }

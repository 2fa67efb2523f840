"""
School Deletion Handler
Removes a school (tenant) and its dependent rows. Teachers and students who
belong only to this school are removed completely; people with other
schools keep their accounts. Courses are preserved and detached.
"""

from sqlalchemy.orm import Session
import logging

logger = logging.getLogger(__name__)


def _add(results, table, count):
    results[table] = results.get(table, 0) + (count or 0)


def _other_school_count(session, link_model, person_field, person_id, school_id):
    return session.query(link_model).filter(
        getattr(link_model, person_field) == person_id,
        link_model.school_id != school_id
    ).count()


def _delete_user_rows(session, user_id, results):
    """Rows every role can own, then the user itself"""
    from models import User, School, SchoolAdmin, PasswordResetRequest, Attendance
    from notification_models import Notification, NotificationReply
    from leave_models import TeacherLeave
    from course_models import Course, CourseVersion
    from timetable_models import ClassSchedule

    notification_ids = [r[0] for r in session.query(Notification.id).filter_by(user_id=user_id).all()]
    if notification_ids:
        _add(results, 'notification_replies', session.query(NotificationReply).filter(
            NotificationReply.notification_id.in_(notification_ids)).delete(synchronize_session=False))
    _add(results, 'notification_replies', session.query(NotificationReply).filter_by(
        user_id=user_id).delete(synchronize_session=False))
    _add(results, 'notifications', session.query(Notification).filter_by(
        user_id=user_id).delete(synchronize_session=False))
    _add(results, 'password_reset_requests', session.query(PasswordResetRequest).filter_by(
        user_id=user_id).delete(synchronize_session=False))
    _add(results, 'attendance', session.query(Attendance).filter_by(
        user_id=user_id).delete(synchronize_session=False))
    _add(results, 'school_admins', session.query(SchoolAdmin).filter_by(
        user_id=user_id).delete(synchronize_session=False))

    # References where this user acted on someone else's rows
    session.query(Notification).filter_by(sender_id=user_id).update({Notification.sender_id: None}, synchronize_session=False)
    session.query(PasswordResetRequest).filter_by(approved_by=user_id).update({PasswordResetRequest.approved_by: None}, synchronize_session=False)
    session.query(TeacherLeave).filter_by(reviewed_by=user_id).update({TeacherLeave.reviewed_by: None}, synchronize_session=False)
    session.query(TeacherLeave).filter_by(approved_by=user_id).update({TeacherLeave.approved_by: None}, synchronize_session=False)
    session.query(Course).filter_by(created_by=user_id).update({Course.created_by: None}, synchronize_session=False)
    session.query(CourseVersion).filter_by(created_by=user_id).update({CourseVersion.created_by: None}, synchronize_session=False)
    session.query(School).filter_by(created_by=user_id).update({School.created_by: None}, synchronize_session=False)
    session.query(ClassSchedule).filter_by(created_by=user_id).update({ClassSchedule.created_by: None}, synchronize_session=False)
    session.query(ClassSchedule).filter_by(teacher_id=user_id).update({ClassSchedule.teacher_id: None}, synchronize_session=False)

    _add(results, 'users', session.query(User).filter_by(id=user_id).delete(synchronize_session=False))


def _delete_teacher_completely(session, teacher_user_id, results):
    from teacher_models import Teacher, TeacherSchool, TeacherClass, TeacherReport
    from leave_models import TeacherLeave

    _add(results, 'teacher_leaves', session.query(TeacherLeave).filter_by(
        teacher_id=teacher_user_id).delete(synchronize_session=False))
    _add(results, 'teacher_reports', session.query(TeacherReport).filter_by(
        teacher_id=teacher_user_id).delete(synchronize_session=False))
    _add(results, 'teacher_classes', session.query(TeacherClass).filter_by(
        teacher_id=teacher_user_id).delete(synchronize_session=False))
    _add(results, 'teacher_schools', session.query(TeacherSchool).filter_by(
        teacher_id=teacher_user_id).delete(synchronize_session=False))
    _add(results, 'teachers', session.query(Teacher).filter_by(
        user_id=teacher_user_id).delete(synchronize_session=False))
    _delete_user_rows(session, teacher_user_id, results)


def _delete_student_completely(session, student_user_id, results):
    from student_models import Student, StudentSchool, StudentCourse, CourseProgress, Submission

    _add(results, 'course_progress', session.query(CourseProgress).filter_by(
        student_id=student_user_id).delete(synchronize_session=False))
    _add(results, 'student_courses', session.query(StudentCourse).filter_by(
        student_id=student_user_id).delete(synchronize_session=False))
    _add(results, 'submissions', session.query(Submission).filter_by(
        student_id=student_user_id).delete(synchronize_session=False))
    _add(results, 'student_schools', session.query(StudentSchool).filter_by(
        student_id=student_user_id).delete(synchronize_session=False))
    _add(results, 'students', session.query(Student).filter_by(
        user_id=student_user_id).delete(synchronize_session=False))
    _delete_user_rows(session, student_user_id, results)


def delete_school(session: Session, school_id: str) -> dict:
    """
    Delete a school and everything scoped to it.

    Steps:
    1. Joining codes
    2. Teachers assigned only to this school (others are kept)
    3. Students enrolled only in this school (others are kept)
    4. Remaining school links: student_schools, teacher_schools, school_admins
    5. Detach courses and drop this school's course access
    6. Classes, teaching reports, leaves and attendance of the school
    7. School notifications and password reset requests
    8. Detach remaining users, then the school itself

    Args:
        session: Database session
        school_id: UUID of the school

    Returns:
        dict: success, results {table: rows}, teachers/students deleted and kept
    """
    from models import School, User, SchoolAdmin, JoinCode, Class, Attendance, PasswordResetRequest
    from teacher_models import TeacherSchool, TeacherClass, TeacherReport
    from student_models import Student, StudentSchool
    from course_models import Course, CourseAccess
    from leave_models import TeacherLeave
    from notification_models import Notification, NotificationReply
    from timetable_models import ClassSchedule, Room, Period

    school = session.query(School).filter_by(id=school_id).first()
    if not school:
        return {'success': False, 'not_found': True, 'error': 'School not found'}

    school_name = school.name
    results = {}
    summary = {
        'teachers_deleted': 0,
        'teachers_kept': 0,
        'students_deleted': 0,
        'students_kept': 0,
    }

    try:
        # 1. Joining codes
        _add(results, 'join_codes', session.query(JoinCode).filter_by(
            school_id=school_id).delete(synchronize_session=False))

        # 2. Teachers
        teacher_ids = [r[0] for r in session.query(TeacherSchool.teacher_id).filter_by(school_id=school_id).distinct()]
        for teacher_id in teacher_ids:
            if _other_school_count(session, TeacherSchool, 'teacher_id', teacher_id, school_id):
                summary['teachers_kept'] += 1
            else:
                _delete_teacher_completely(session, teacher_id, results)
                summary['teachers_deleted'] += 1
        logger.info(f"School {school_id}: {summary['teachers_deleted']} teachers deleted, {summary['teachers_kept']} kept")

        # 3. Students
        student_ids = [r[0] for r in session.query(StudentSchool.student_id).filter_by(school_id=school_id).distinct()]
        for student_id in student_ids:
            if _other_school_count(session, StudentSchool, 'student_id', student_id, school_id):
                summary['students_kept'] += 1
            else:
                _delete_student_completely(session, student_id, results)
                summary['students_deleted'] += 1
        logger.info(f"School {school_id}: {summary['students_deleted']} students deleted, {summary['students_kept']} kept")

        # 4. Remaining links
        _add(results, 'student_schools', session.query(StudentSchool).filter_by(
            school_id=school_id).delete(synchronize_session=False))
        _add(results, 'teacher_schools', session.query(TeacherSchool).filter_by(
            school_id=school_id).delete(synchronize_session=False))
        _add(results, 'school_admins', session.query(SchoolAdmin).filter_by(
            school_id=school_id).delete(synchronize_session=False))
        session.query(Student).filter_by(school_id=school_id).update(
            {Student.school_id: None}, synchronize_session=False)

        # 5. Courses survive without the school
        results['courses_detached'] = session.query(Course).filter_by(school_id=school_id).update(
            {Course.school_id: None}, synchronize_session=False)
        _add(results, 'course_access', session.query(CourseAccess).filter_by(
            school_id=school_id).delete(synchronize_session=False))

        # 6. Timetable, classes, reports, leaves, attendance
        _add(results, 'class_schedules', session.query(ClassSchedule).filter_by(
            school_id=school_id).delete(synchronize_session=False))
        _add(results, 'rooms', session.query(Room).filter_by(
            school_id=school_id).delete(synchronize_session=False))
        _add(results, 'periods', session.query(Period).filter_by(
            school_id=school_id).delete(synchronize_session=False))
        _add(results, 'teacher_classes', session.query(TeacherClass).filter_by(
            school_id=school_id).delete(synchronize_session=False))
        _add(results, 'teacher_reports', session.query(TeacherReport).filter_by(
            school_id=school_id).delete(synchronize_session=False))
        _add(results, 'classes', session.query(Class).filter_by(
            school_id=school_id).delete(synchronize_session=False))
        _add(results, 'teacher_leaves', session.query(TeacherLeave).filter_by(
            school_id=school_id).delete(synchronize_session=False))
        _add(results, 'attendance', session.query(Attendance).filter_by(
            school_id=school_id).delete(synchronize_session=False))

        # 7. Notifications and reset requests
        notification_ids = [r[0] for r in session.query(Notification.id).filter_by(school_id=school_id).all()]
        if notification_ids:
            _add(results, 'notification_replies', session.query(NotificationReply).filter(
                NotificationReply.notification_id.in_(notification_ids)).delete(synchronize_session=False))
        _add(results, 'notifications', session.query(Notification).filter_by(
            school_id=school_id).delete(synchronize_session=False))
        _add(results, 'password_reset_requests', session.query(PasswordResetRequest).filter_by(
            school_id=school_id).delete(synchronize_session=False))

        # 8. Users that remain, then the school
        results['users_detached'] = session.query(User).filter_by(school_id=school_id).update(
            {User.school_id: None}, synchronize_session=False)
        school.created_by = None
        session.flush()
        _add(results, 'schools', session.query(School).filter_by(id=school_id).delete(synchronize_session=False))

        session.commit()
        logger.info(f"Deleted school {school_id} ({school_name}): {results}")

        return {
            'success': True,
            'message': f'School "{school_name}" deleted successfully',
            'results': results,
            **summary,
        }

    except Exception as e:
        session.rollback()
        logger.error(f"Error deleting school {school_id}: {str(e)}")
        return {
            'success': False,
            'error': str(e),
            'results': results,
            **summary,
        }

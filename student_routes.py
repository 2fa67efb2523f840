"""
Student Portal Routes
Course catalogue for the student's school and grade, chapter progress,
assignments with auto-grading, and the dashboard summary
"""

from flask import Blueprint, request, jsonify
from flask_login import current_user
from datetime import datetime
import logging

from db_single import get_session
from models import School
from course_models import Course, CourseAccess, Chapter, ChapterContent, Assignment, AssignmentQuestion
from student_models import StudentCourse, CourseProgress, Submission
from notification_models import Notification
from extensions import limiter, RateLimitPresets
from auth_helpers import require_role, get_json_body, get_student_enrollment
from course_helpers import normalize_grade

logger = logging.getLogger(__name__)

student_bp = Blueprint('student', __name__, url_prefix='/api/student')

FINAL_SUBMISSION_STATUSES = ('submitted', 'graded')


def _no_enrolment():
    return jsonify({'error': 'Forbidden', 'message': 'No active school enrolment found'}), 403


def _visible_course_ids(session_db, enrolment):
    """Published courses opened to the student's school and grade"""
    grade = normalize_grade(enrolment.grade)
    rows = session_db.query(Course.id).join(CourseAccess, CourseAccess.course_id == Course.id).filter(
        CourseAccess.school_id == enrolment.school_id,
        CourseAccess.grade == grade,
        Course.is_published == True
    ).distinct().all()
    return [r[0] for r in rows]


def _can_view_course(session_db, enrolment, course_id):
    return course_id in _visible_course_ids(session_db, enrolment)


def _recompute_progress(session_db, student_id, course_id):
    """Completed published chapters over all published chapters of the course"""
    total = session_db.query(Chapter).filter(Chapter.course_id == course_id, Chapter.is_published == True).count()
    completed = session_db.query(CourseProgress).join(Chapter, Chapter.id == CourseProgress.chapter_id).filter(
        CourseProgress.student_id == student_id,
        CourseProgress.course_id == course_id,
        CourseProgress.completed == True,
        Chapter.is_published == True
    ).count()
    percentage = round(completed / total * 100, 1) if total else 0.0

    enrolment = session_db.query(StudentCourse).filter_by(student_id=student_id, course_id=course_id).first()
    if not enrolment:
        enrolment = StudentCourse(student_id=student_id, course_id=course_id)
        session_db.add(enrolment)
    enrolment.progress_percentage = percentage
    if percentage >= 100:
        if not enrolment.is_completed:
            enrolment.completed_at = datetime.utcnow()
        enrolment.is_completed = True
    else:
        enrolment.is_completed = False
        enrolment.completed_at = None
    return enrolment


def _collect_answers(questions, answers, text_content):
    """
    Map submitted answers onto question ids

    Returns:
        tuple: (answers by question id for grading, answers to store keyed by index)
    """
    by_question = {}
    stored = {}
    if isinstance(answers, dict):
        for key, answer in answers.items():
            try:
                index = int(key)
            except (TypeError, ValueError):
                continue
            if 0 <= index < len(questions):
                by_question[questions[index].id] = answer
                stored[str(index)] = answer
    elif isinstance(answers, list):
        for index, answer in enumerate(answers[:len(questions)]):
            by_question[questions[index].id] = answer
            stored[str(index)] = answer

    if isinstance(text_content, str) and text_content.strip():
        for index, question in enumerate(questions):
            if (question.question_type or '').lower() == 'essay':
                by_question.setdefault(question.id, text_content)
                stored.setdefault(str(index), text_content)
    return by_question, stored


# ===== COURSES AND CHAPTERS =====

@student_bp.route('/courses', methods=['GET'])
@require_role('student')
@limiter.limit(RateLimitPresets.READ)
def my_courses():
    """Courses visible to the student; first view enrols them"""
    session_db = get_session()
    try:
        enrolment = get_student_enrollment(session_db, current_user.id)
        if not enrolment:
            return _no_enrolment()

        course_ids = _visible_course_ids(session_db, enrolment)
        if not course_ids:
            return jsonify({'success': True, 'courses': [], 'count': 0})

        progress = {sc.course_id: sc for sc in session_db.query(StudentCourse).filter(
            StudentCourse.student_id == current_user.id, StudentCourse.course_id.in_(course_ids))}
        for course_id in course_ids:
            if course_id not in progress:
                progress[course_id] = StudentCourse(student_id=current_user.id, course_id=course_id)
                session_db.add(progress[course_id])
        session_db.commit()

        courses = []
        for course in session_db.query(Course).filter(Course.id.in_(course_ids)).order_by(Course.created_at.desc()):
            item = course.to_dict()
            item['progress_percentage'] = progress[course.id].progress_percentage or 0.0
            item['is_completed'] = bool(progress[course.id].is_completed)
            item['enrolled_at'] = progress[course.id].enrolled_at.isoformat() if progress[course.id].enrolled_at else None
            courses.append(item)
        return jsonify({'success': True, 'courses': courses, 'count': len(courses)})
    except Exception as e:
        session_db.rollback()
        logger.error(f"Error loading courses for student {current_user.id}: {e}")
        return jsonify({'error': 'Failed to fetch courses'}), 500
    finally:
        session_db.close()


@student_bp.route('/courses/<course_id>/chapters', methods=['GET'])
@require_role('student')
def course_chapters(course_id):
    session_db = get_session()
    try:
        enrolment = get_student_enrollment(session_db, current_user.id)
        if not enrolment:
            return _no_enrolment()
        if not _can_view_course(session_db, enrolment, course_id):
            return jsonify({'error': 'Course not found'}), 404

        chapters = session_db.query(Chapter).filter(
            Chapter.course_id == course_id, Chapter.is_published == True
        ).order_by(Chapter.order_index).all()
        done = {p.chapter_id: p for p in session_db.query(CourseProgress).filter_by(
            student_id=current_user.id, course_id=course_id)}

        data = []
        for chapter in chapters:
            item = chapter.to_dict()
            record = done.get(chapter.id)
            item['is_completed'] = bool(record and record.completed)
            item['time_spent_minutes'] = record.time_spent_minutes if record else 0
            data.append(item)
        return jsonify({'success': True, 'chapters': data, 'count': len(data)})
    except Exception as e:
        logger.error(f"Error loading chapters of course {course_id} for student {current_user.id}: {e}")
        return jsonify({'error': 'Failed to fetch chapters'}), 500
    finally:
        session_db.close()


@student_bp.route('/courses/<course_id>/chapters/<chapter_id>/contents', methods=['GET'])
@require_role('student')
def chapter_contents(course_id, chapter_id):
    session_db = get_session()
    try:
        enrolment = get_student_enrollment(session_db, current_user.id)
        if not enrolment:
            return _no_enrolment()
        if not _can_view_course(session_db, enrolment, course_id):
            return jsonify({'error': 'Course not found'}), 404

        chapter = session_db.query(Chapter).filter_by(id=chapter_id, course_id=course_id, is_published=True).first()
        if not chapter:
            return jsonify({'error': 'Chapter not found'}), 404

        contents = session_db.query(ChapterContent).filter(
            ChapterContent.chapter_id == chapter_id, ChapterContent.is_published == True
        ).order_by(ChapterContent.order_index).all()
        return jsonify({
            'success': True,
            'chapter': chapter.to_dict(),
            'contents': [c.to_dict() for c in contents],
            'count': len(contents),
        })
    except Exception as e:
        logger.error(f"Error loading contents of chapter {chapter_id}: {e}")
        return jsonify({'error': 'Failed to fetch chapter contents'}), 500
    finally:
        session_db.close()


@student_bp.route('/save-chapter-progress', methods=['POST'])
@require_role('student')
@limiter.limit(RateLimitPresets.WRITE)
def save_chapter_progress():
    data = get_json_body()
    course_id = data.get('course_id')
    chapter_id = data.get('chapter_id')
    if not course_id or not chapter_id:
        return jsonify({'error': 'course_id and chapter_id are required'}), 400
    try:
        time_spent = max(int(data.get('time_spent_minutes') or 0), 0)
    except (TypeError, ValueError):
        return jsonify({'error': 'time_spent_minutes must be a number'}), 400

    session_db = get_session()
    try:
        enrolment = get_student_enrollment(session_db, current_user.id)
        if not enrolment:
            return _no_enrolment()
        if not _can_view_course(session_db, enrolment, course_id):
            return jsonify({'error': 'Course not found'}), 404
        if not session_db.query(Chapter.id).filter_by(id=chapter_id, course_id=course_id).first():
            return jsonify({'error': 'Chapter not found'}), 404

        now = datetime.utcnow()
        record = session_db.query(CourseProgress).filter_by(
            student_id=current_user.id, course_id=course_id, chapter_id=chapter_id
        ).first()
        if not record:
            record = CourseProgress(student_id=current_user.id, course_id=course_id, chapter_id=chapter_id,
                                    time_spent_minutes=0)
            session_db.add(record)

        completed = bool(data.get('completed'))
        record.time_spent_minutes = (record.time_spent_minutes or 0) + time_spent
        record.last_accessed = now
        if completed and not record.completed:
            record.completed_at = now
        record.completed = completed or bool(record.completed)
        record.progress_percentage = 100.0 if record.completed else record.progress_percentage or 0.0
        session_db.flush()

        course_enrolment = _recompute_progress(session_db, current_user.id, course_id)
        session_db.commit()
        return jsonify({
            'success': True,
            'message': 'Progress saved',
            'progress': record.to_dict(),
            'course_progress': course_enrolment.progress_percentage,
            'course_completed': bool(course_enrolment.is_completed),
        })
    except Exception as e:
        session_db.rollback()
        logger.error(f"Error saving progress for student {current_user.id}: {e}")
        return jsonify({'error': 'Failed to save progress'}), 500
    finally:
        session_db.close()


@student_bp.route('/progress', methods=['GET'])
@require_role('student')
def my_progress():
    session_db = get_session()
    try:
        rows = session_db.query(StudentCourse, Course.name).join(
            Course, Course.id == StudentCourse.course_id
        ).filter(StudentCourse.student_id == current_user.id).order_by(StudentCourse.enrolled_at.desc()).all()

        chapters_done = {}
        for record in session_db.query(CourseProgress).filter_by(student_id=current_user.id, completed=True):
            chapters_done[record.course_id] = chapters_done.get(record.course_id, 0) + 1

        courses = []
        for enrolment, course_name in rows:
            item = enrolment.to_dict()
            item['course_name'] = course_name
            item['chapters_completed'] = chapters_done.get(enrolment.course_id, 0)
            courses.append(item)

        overall = round(sum(c['progress_percentage'] or 0 for c in courses) / len(courses), 1) if courses else 0.0
        return jsonify({'success': True, 'courses': courses, 'overall_progress': overall})
    except Exception as e:
        logger.error(f"Error loading progress for student {current_user.id}: {e}")
        return jsonify({'error': 'Failed to fetch progress'}), 500
    finally:
        session_db.close()


# ===== ASSIGNMENTS =====

@student_bp.route('/assignments', methods=['GET'])
@require_role('student')
def my_assignments():
    course_id = request.args.get('course_id')
    session_db = get_session()
    try:
        enrolment = get_student_enrollment(session_db, current_user.id)
        if not enrolment:
            return _no_enrolment()

        course_ids = _visible_course_ids(session_db, enrolment)
        if course_id:
            course_ids = [c for c in course_ids if c == course_id]
        if not course_ids:
            return jsonify({'success': True, 'assignments': [], 'count': 0})

        rows = session_db.query(Assignment, Course.name).join(Course, Course.id == Assignment.course_id).filter(
            Assignment.course_id.in_(course_ids), Assignment.is_published == True
        ).order_by(Assignment.due_date, Assignment.order_index).all()
        submissions = {s.assignment_id: s for s in session_db.query(Submission).filter(
            Submission.student_id == current_user.id,
            Submission.assignment_id.in_([a.id for a, _ in rows])
        )} if rows else {}

        data = []
        for assignment, course_name in rows:
            item = assignment.to_dict()
            item['course_name'] = course_name
            submission = submissions.get(assignment.id)
            item['submission_status'] = submission.status if submission else 'not_submitted'
            item['grade'] = submission.grade if submission else None
            item['attempts'] = (submission.attempts or 1) if submission else 0
            data.append(item)
        return jsonify({'success': True, 'assignments': data, 'count': len(data)})
    except Exception as e:
        logger.error(f"Error loading assignments for student {current_user.id}: {e}")
        return jsonify({'error': 'Failed to fetch assignments'}), 500
    finally:
        session_db.close()


@student_bp.route('/assignments/<assignment_id>', methods=['GET'])
@require_role('student')
def assignment_detail(assignment_id):
    session_db = get_session()
    try:
        enrolment = get_student_enrollment(session_db, current_user.id)
        if not enrolment:
            return _no_enrolment()

        assignment = session_db.query(Assignment).filter_by(id=assignment_id, is_published=True).first()
        if not assignment or not _can_view_course(session_db, enrolment, assignment.course_id):
            return jsonify({'error': 'Assignment not found'}), 404

        questions = session_db.query(AssignmentQuestion).filter_by(assignment_id=assignment_id).order_by(
            AssignmentQuestion.order_index).all()
        submission = session_db.query(Submission).filter_by(
            assignment_id=assignment_id, student_id=current_user.id).first()

        data = assignment.to_dict()
        data['questions'] = [q.to_dict(include_answer=False) for q in questions]
        return jsonify({
            'success': True,
            'assignment': data,
            'submission': submission.to_dict() if submission else None,
        })
    except Exception as e:
        logger.error(f"Error loading assignment {assignment_id}: {e}")
        return jsonify({'error': 'Failed to fetch assignment'}), 500
    finally:
        session_db.close()


@student_bp.route('/assignments/<assignment_id>/submit', methods=['POST'])
@require_role('student')
@limiter.limit(RateLimitPresets.WRITE)
def submit_assignment(assignment_id):
    """
    Submit answers, a file link or free text for an assignment

    Auto-gradable assignments are scored immediately. A repeat submission
    updates the existing row and counts another attempt.
    """
    from grading_helpers import grade_assignment

    data = get_json_body()
    answers = data.get('answers')
    file_url = data.get('fileUrl')
    text_content = data.get('textContent')
    if not answers and not file_url and not (isinstance(text_content, str) and text_content.strip()):
        return jsonify({'error': 'Validation failed', 'details': 'answers, fileUrl or textContent is required'}), 400

    session_db = get_session()
    try:
        assignment = session_db.query(Assignment).filter_by(id=assignment_id, is_published=True).first()
        if not assignment:
            return jsonify({'error': 'Not Found', 'details': 'Assignment not found or not published'}), 404

        enrolment = get_student_enrollment(session_db, current_user.id)
        if not enrolment or not _can_view_course(session_db, enrolment, assignment.course_id):
            return jsonify({'error': 'Not Found', 'details': 'Assignment not found or not published'}), 404

        existing = session_db.query(Submission).filter_by(
            assignment_id=assignment_id, student_id=current_user.id).first()
        if existing and existing.status in FINAL_SUBMISSION_STATUSES and assignment.max_attempts:
            if assignment.max_attempts == 1:
                return jsonify({
                    'error': 'Already Submitted',
                    'details': 'This assignment has already been submitted and cannot be modified. Maximum 1 attempt allowed.',
                }), 400
            if (existing.attempts or 1) >= assignment.max_attempts:
                return jsonify({
                    'error': 'Attempt Limit Exceeded',
                    'details': f"Maximum {assignment.max_attempts} attempt(s) allowed for this assignment.",
                }), 400

        questions = session_db.query(AssignmentQuestion).filter_by(assignment_id=assignment_id).order_by(
            AssignmentQuestion.order_index).all()
        by_question, stored_answers = _collect_answers(questions, answers, text_content)

        status = 'submitted'
        grade = None
        feedback = None
        grading = None
        if assignment.auto_grading_enabled and questions:
            grading = grade_assignment(
                [{
                    'id': q.id,
                    'question_type': q.question_type,
                    'correct_answer': q.answer,
                    'marks': q.marks or 1,
                    'options': q.option_list,
                } for q in questions],
                by_question,
                assignment.auto_grading_enabled,
            )
            if grading['canAutoGrade']:
                status = 'graded'
                grade = grading['percentage']
                feedback = (f"Auto-graded: {grading['totalScore']}/{grading['maxScore']} points "
                            f"({grading['percentage']}%)")

        now = datetime.utcnow()
        if existing:
            submission = existing
            submission.attempts = (existing.attempts or 1) + 1
        else:
            submission = Submission(assignment_id=assignment_id, student_id=current_user.id, attempts=1)
            session_db.add(submission)

        submission.answers = stored_answers or (answers if isinstance(answers, (dict, list)) else None)
        submission.file_url = file_url or None
        submission.text_content = text_content or None
        submission.status = status
        submission.grade = grade
        submission.feedback = feedback
        submission.submitted_at = now
        submission.graded_at = now if status == 'graded' else None
        session_db.commit()

        logger.info(f"Student {current_user.id} submitted assignment {assignment_id} ({status})")
        response = {
            'success': True,
            'message': 'Assignment submitted successfully',
            'submission': submission.to_dict(),
        }
        if grading and grading['canAutoGrade']:
            response['grading'] = grading
        return jsonify(response), 200 if existing else 201
    except Exception as e:
        session_db.rollback()
        logger.error(f"Error submitting assignment {assignment_id} for student {current_user.id}: {e}")
        return jsonify({'error': 'Failed to submit assignment'}), 500
    finally:
        session_db.close()


# ===== DASHBOARD =====

@student_bp.route('/dashboard', methods=['GET'])
@require_role('student')
def dashboard():
    session_db = get_session()
    try:
        enrolment = get_student_enrollment(session_db, current_user.id)
        if not enrolment:
            return _no_enrolment()

        school = session_db.get(School, enrolment.school_id)
        course_ids = _visible_course_ids(session_db, enrolment)
        enrolled = session_db.query(StudentCourse).filter_by(student_id=current_user.id).all()

        pending_assignments = 0
        if course_ids:
            submitted = session_db.query(Submission.assignment_id).filter(Submission.student_id == current_user.id)
            pending_assignments = session_db.query(Assignment).filter(
                Assignment.course_id.in_(course_ids),
                Assignment.is_published == True,
                ~Assignment.id.in_(submitted)
            ).count()

        stats = {
            'school_name': school.name if school else None,
            'grade': enrolment.grade,
            'available_courses': len(course_ids),
            'enrolled_courses': len(enrolled),
            'completed_courses': sum(1 for e in enrolled if e.is_completed),
            'average_progress': round(sum(e.progress_percentage or 0 for e in enrolled) / len(enrolled), 1)
            if enrolled else 0.0,
            'pending_assignments': pending_assignments,
            'unread_notifications': session_db.query(Notification).filter(
                Notification.user_id == current_user.id,
                Notification.is_read == False
            ).count(),
        }
        return jsonify({'success': True, 'stats': stats})
    except Exception as e:
        logger.error(f"Error loading dashboard for student {current_user.id}: {e}")
        return jsonify({'error': 'Failed to load dashboard'}), 500
    finally:
        session_db.close()

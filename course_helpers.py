"""
Course Helper Functions
Grade normalization, school/grade access, nested chapter/content/assignment
writes with temporary-id reconciliation, release schedules and totals
"""

from datetime import datetime, timedelta
from dateutil import parser as date_parser
from dateutil import tz
from sqlalchemy import func
import re
import json
import logging

from models import School, generate_uuid
from course_models import (
    Course, CourseAccess, Chapter, ChapterContent, Assignment, AssignmentQuestion,
    CourseSchedule, CourseVersion, VIDEO_CONTENT_TYPES, MATERIAL_CONTENT_TYPES
)
from validators import ValidationError, RequestValidator, is_valid_uuid

logger = logging.getLogger(__name__)

RELEASE_INTERVAL_DAYS = {
    'Daily': 1,
    'Weekly': 7,
    'Bi-weekly': 14,
}

QUESTION_TYPE_ALIASES = {
    'multiple_choice': 'mcq',
    'multiplechoice': 'mcq',
    'fillblank': 'fill_blank',
    'fill_in_the_blank': 'fill_blank',
    'truefalse': 'true_false',
    'shortanswer': 'short_answer',
}
QUESTION_TYPES = ('mcq', 'essay', 'true_false', 'short_answer', 'fill_blank')


# ===== GRADES AND ACCESS =====

def normalize_grade(grade):
    """
    Normalize a grade label to the stored form

    Examples:
        "Grade 5" -> "Grade 5", "grade 5" -> "Grade 5", "5" -> "Grade 5",
        "pre-k" -> "Pre-K", "kg" -> "Kindergarten", "nursery" -> "Nursery"
    """
    if grade is None:
        return ''
    value = str(grade).strip()
    if not value:
        return ''
    if re.match(r'^Grade \d+$', value):
        return value

    stripped = re.sub(r'^grade\s*', '', value, flags=re.IGNORECASE).strip()
    lowered = stripped.lower()

    if lowered in ('pre-k', 'prek', 'pre-kg'):
        return 'Pre-K'
    if lowered in ('k', 'kindergarten', 'kg'):
        return 'Kindergarten'
    if re.match(r'^\d{1,2}$', stripped):
        return f"Grade {int(stripped)}"
    return stripped[:1].upper() + stripped[1:]


def clean_school_ids(school_ids):
    """Keep valid UUIDs only, de-duplicated in order"""
    cleaned = []
    for school_id in school_ids or []:
        if is_valid_uuid(school_id) and school_id not in cleaned:
            cleaned.append(school_id)
    return cleaned


def clean_grades(grades):
    cleaned = []
    for grade in grades or []:
        if isinstance(grade, str) and grade.strip() and grade.strip() not in cleaned:
            cleaned.append(grade.strip())
    return cleaned


def find_invalid_school_ids(session, school_ids):
    found = {row[0] for row in session.query(School.id).filter(School.id.in_(school_ids)).all()} if school_ids else set()
    return [s for s in school_ids if s not in found]


def build_access_entries(school_ids, grades):
    """
    Cross product of schools and normalized grades without duplicates

    Returns:
        list of (school_id, grade) tuples
    """
    entries = []
    seen = set()
    for school_id in school_ids:
        for grade in grades:
            normalized = normalize_grade(grade)
            if not normalized:
                continue
            key = (school_id, normalized)
            if key not in seen:
                seen.add(key)
                entries.append(key)
    return entries


def replace_course_access(session, course_id, school_ids, grades):
    session.query(CourseAccess).filter_by(course_id=course_id).delete(synchronize_session=False)
    entries = build_access_entries(school_ids, grades)
    for school_id, grade in entries:
        session.add(CourseAccess(course_id=course_id, school_id=school_id, grade=grade))
    session.flush()
    return entries


def get_course_access_map(session, course_ids):
    """course_id -> list of {school_id, school_name, grade}"""
    result = {course_id: [] for course_id in course_ids}
    if not course_ids:
        return result
    rows = session.query(CourseAccess, School.name).outerjoin(
        School, School.id == CourseAccess.school_id
    ).filter(CourseAccess.course_id.in_(course_ids)).order_by(CourseAccess.grade).all()
    for access, school_name in rows:
        result[access.course_id].append({
            'school_id': access.school_id,
            'school_name': school_name,
            'grade': access.grade,
        })
    return result


# ===== TEMPORARY-ID RECONCILIATION =====

class ChapterIdMap:
    """
    Maps the identifiers a client used for chapters (temporary ids, order
    numbers, array positions) to the chapter ids stored in the database
    """

    def __init__(self):
        self._by_key = {}
        self._by_order = {}
        self._by_position = {}
        self._frontend = {}
        self.chapter_ids = []

    def register(self, db_id, frontend_id=None, order_index=None, position=None):
        if frontend_id not in (None, ''):
            raw = str(frontend_id)
            self._by_key[raw] = db_id
            self._by_key[raw.lower()] = db_id
            self._frontend[raw] = db_id
        self._by_key[db_id] = db_id
        if order_index is not None:
            self._by_order.setdefault(int(order_index), db_id)
        if position is not None:
            self._by_position[position] = db_id
        if db_id not in self.chapter_ids:
            self.chapter_ids.append(db_id)

    def resolve(self, chapter_ref=None, order_index=None, position=None):
        """
        Resolve a chapter reference from a nested payload item

        Tries the id map (raw, then lowercase), a numeric reference as an
        order number and then as a zero-based array position, the explicit
        order index, the explicit position, and finally the first chapter.

        Returns:
            str or None when no chapter exists at all
        """
        if chapter_ref not in (None, ''):
            key = str(chapter_ref)
            if key in self._by_key:
                return self._by_key[key]
            if key.lower() in self._by_key:
                return self._by_key[key.lower()]
            if key.isdigit() and int(key) in self._by_order:
                return self._by_order[int(key)]
            if key.isdigit() and int(key) in self._by_position:
                return self._by_position[int(key)]

        order = _as_int(order_index)
        if order is not None and order in self._by_order:
            return self._by_order[order]

        index = _as_int(position)
        if index is not None and index in self._by_position:
            return self._by_position[index]

        return self.chapter_ids[0] if self.chapter_ids else None

    def as_dict(self):
        """frontend id -> database id, for the client to swap its temp ids"""
        return dict(self._frontend)


def _as_int(value):
    if value in (None, ''):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _chapter_order(chapter, index):
    return chapter.get('order_number') or chapter.get('order_index') or index + 1


def _chapter_fields(chapter, index):
    title = (chapter.get('name') or chapter.get('title') or f"Chapter {index + 1}").strip()
    order = RequestValidator.validate_int(_chapter_order(chapter, index), f"chapters.{index}.order_index", minimum=0)
    return {
        'title': title,
        'name': title,
        'description': chapter.get('description'),
        'order_index': order,
        'order_number': order,
        'is_published': chapter.get('is_published', True),
    }


def _item_chapter_ref(item):
    return item.get('chapter_id') or item.get('chapterId')


def _item_chapter_position(item):
    return item.get('chapter_index')


def _item_chapter_order(item):
    return item.get('chapter_order') or item.get('chapter_order_index')


def insert_chapters(session, course_id, chapters):
    """
    Insert chapters for a new course

    A client id is kept only when it is a UUID not already in use; temporary
    ids get a server UUID and are recorded in the returned map.

    Returns:
        ChapterIdMap
    """
    id_map = ChapterIdMap()
    for index, chapter in enumerate(chapters or []):
        frontend_id = chapter.get('id') or chapter.get('temp_id')
        db_id = frontend_id if is_valid_uuid(frontend_id) else None
        if db_id and session.query(Chapter.id).filter_by(id=db_id).first():
            db_id = None
        db_id = db_id or generate_uuid()

        fields = _chapter_fields(chapter, index)
        row = Chapter(id=db_id, course_id=course_id, **fields)
        row.outcomes = chapter.get('learning_outcomes') or []
        session.add(row)
        id_map.register(db_id, frontend_id, fields['order_index'], index)
    session.flush()
    return id_map


def upsert_chapters(session, course_id, chapters):
    """
    Make the course's chapters match the payload

    Chapters missing from the payload are deleted with their contents,
    schedules and progress rows; payload chapters whose id belongs to this
    course are updated in place, others are inserted.

    Returns:
        tuple: (ChapterIdMap, deleted_count)
    """
    from student_models import CourseProgress

    existing = {c.id: c for c in session.query(Chapter).filter_by(course_id=course_id).all()}
    keep_ids = {
        ch.get('id') for ch in chapters or []
        if is_valid_uuid(ch.get('id')) and ch.get('id') in existing
    }

    removed_ids = [cid for cid in existing if cid not in keep_ids]
    if removed_ids:
        session.query(ChapterContent).filter(ChapterContent.chapter_id.in_(removed_ids)).delete(synchronize_session=False)
        session.query(CourseSchedule).filter(CourseSchedule.chapter_id.in_(removed_ids)).delete(synchronize_session=False)
        session.query(CourseProgress).filter(CourseProgress.chapter_id.in_(removed_ids)).delete(synchronize_session=False)
        session.query(Assignment).filter(Assignment.chapter_id.in_(removed_ids)).update(
            {Assignment.chapter_id: None}, synchronize_session=False
        )
        session.query(Chapter).filter(Chapter.id.in_(removed_ids)).delete(synchronize_session=False)

    id_map = ChapterIdMap()
    for index, chapter in enumerate(chapters or []):
        frontend_id = chapter.get('id') or chapter.get('temp_id')
        fields = _chapter_fields(chapter, index)
        if frontend_id in keep_ids:
            row = existing[frontend_id]
            for key, value in fields.items():
                setattr(row, key, value)
            if 'learning_outcomes' in chapter:
                row.outcomes = chapter.get('learning_outcomes') or []
            db_id = row.id
        else:
            db_id = generate_uuid()
            row = Chapter(id=db_id, course_id=course_id, **fields)
            row.outcomes = chapter.get('learning_outcomes') or []
            session.add(row)
        id_map.register(db_id, frontend_id, fields['order_index'], index)

    session.flush()
    return id_map, len(removed_ids)


def load_chapter_map(session, course_id):
    """ChapterIdMap over the chapters already stored for a course"""
    id_map = ChapterIdMap()
    chapters = session.query(Chapter).filter_by(course_id=course_id).order_by(Chapter.order_index).all()
    for index, chapter in enumerate(chapters):
        id_map.register(chapter.id, chapter.id, chapter.order_index, index)
    return id_map


# ===== CHAPTER CONTENTS =====

def derive_contents(data):
    """
    Chapter contents from the payload, or from the legacy videos/materials arrays

    Returns:
        list of content dicts, or None when the payload carries no content keys
    """
    if data.get('chapter_contents') is not None:
        return list(data.get('chapter_contents') or [])
    if data.get('videos') is None and data.get('materials') is None:
        return None

    contents = []
    for index, video in enumerate(data.get('videos') or []):
        contents.append({
            'chapter_id': _item_chapter_ref(video),
            'chapter_order': video.get('chapter_order') or video.get('order_number'),
            'chapter_index': video.get('chapter_index'),
            'content_type': 'video_link',
            'title': video.get('title') or f"Video {index + 1}",
            'content_url': video.get('video_url') or video.get('url'),
            'duration_minutes': video.get('duration'),
            'order_index': video.get('order_index') or index + 1,
        })
    for index, material in enumerate(data.get('materials') or []):
        file_type = (material.get('file_type') or '').lower()
        contents.append({
            'chapter_id': _item_chapter_ref(material),
            'chapter_order': material.get('chapter_order') or material.get('order_number'),
            'chapter_index': material.get('chapter_index'),
            'content_type': 'pdf' if file_type == 'pdf' else 'file',
            'title': material.get('title') or f"Material {index + 1}",
            'content_url': material.get('file_url') or material.get('url'),
            'file_size': material.get('file_size'),
            'order_index': material.get('order_index') or index + 1,
        })
    return contents


def _content_fields(content, index):
    return {
        'content_type': (content.get('content_type') or 'text').lower(),
        'title': (content.get('title') or f"Content {index + 1}").strip(),
        'content_url': content.get('content_url'),
        'content_text': content.get('content_text'),
        'duration_minutes': content.get('duration_minutes'),
        'storage_path': content.get('storage_path'),
        'file_size': content.get('file_size'),
        'order_index': content.get('order_index') or index + 1,
        'is_published': content.get('is_published', True),
    }


def upsert_contents(session, course_id, contents, id_map):
    """
    Write chapter contents, resolving each item's chapter through id_map.
    Existing contents of the course that are not in the payload are deleted.

    Returns:
        tuple: (written_count, deleted_count)
    """
    existing = {
        c.id: c for c in session.query(ChapterContent).join(
            Chapter, Chapter.id == ChapterContent.chapter_id
        ).filter(Chapter.course_id == course_id).all()
    }
    kept = set()
    written = 0

    for index, content in enumerate(contents or []):
        chapter_id = id_map.resolve(
            _item_chapter_ref(content), _item_chapter_order(content), _item_chapter_position(content))
        if not chapter_id:
            logger.warning(f"Skipping content '{content.get('title')}' for course {course_id}: no chapters")
            continue

        fields = _content_fields(content, index)
        content_id = content.get('id')
        if is_valid_uuid(content_id) and content_id in existing:
            row = existing[content_id]
            for key, value in fields.items():
                setattr(row, key, value)
            row.chapter_id = chapter_id
            kept.add(content_id)
        else:
            session.add(ChapterContent(chapter_id=chapter_id, course_id=course_id, **fields))
        written += 1

    removed = [cid for cid in existing if cid not in kept]
    if removed:
        session.query(ChapterContent).filter(ChapterContent.id.in_(removed)).delete(synchronize_session=False)
    session.flush()
    return written, len(removed)


# ===== ASSIGNMENTS =====

def normalize_question_type(value):
    if not value:
        return 'mcq'
    key = re.sub(r'[\s\-]+', '_', str(value).strip().lower())
    key = QUESTION_TYPE_ALIASES.get(key, key)
    return key if key in QUESTION_TYPES else 'mcq'


def _insert_questions(session, assignment_id, questions):
    count = 0
    for index, question in enumerate(questions or []):
        text = (question.get('question_text') or question.get('question') or '').strip()
        if not text:
            continue
        row = AssignmentQuestion(
            assignment_id=assignment_id,
            question_type=normalize_question_type(question.get('question_type') or question.get('type')),
            question_text=text,
            marks=question.get('marks') or question.get('points') or 1,
            explanation=question.get('explanation'),
            order_index=question.get('order_index', index),
        )
        row.option_list = [o for o in (question.get('options') or []) if str(o).strip()]
        row.answer = question.get('correct_answer')
        session.add(row)
        count += 1
    return count


def _assignment_fields(assignment, index, chapter_id):
    due_date = assignment.get('due_date')
    return {
        'chapter_id': chapter_id,
        'title': (assignment.get('title') or f"Assignment {index + 1}").strip(),
        'description': assignment.get('description'),
        'assignment_type': (assignment.get('assignment_type') or 'mcq').lower(),
        'max_marks': assignment.get('max_score') or assignment.get('max_marks') or 100,
        'max_attempts': assignment.get('max_attempts'),
        'due_date': parse_datetime(due_date) if due_date else None,
        'auto_grading_enabled': bool(assignment.get('auto_grading_enabled', False)),
        'is_published': assignment.get('is_published', True),
        'order_index': assignment.get('order_index') or index + 1,
    }


def write_assignments(session, course_id, assignments, id_map):
    """
    Make the course's assignments match the payload

    Assignments keep their id when the payload refers to one of this course's
    assignments (submissions stay attached); their questions are always
    deleted and re-inserted. Assignments missing from the payload are removed
    with their questions and submissions.

    Returns:
        dict: assignments and questions written, assignments deleted
    """
    from student_models import Submission

    existing = {a.id: a for a in session.query(Assignment).filter_by(course_id=course_id).all()}
    kept = set()
    stats = {'assignments': 0, 'questions': 0, 'deleted': 0}

    for index, assignment in enumerate(assignments or []):
        chapter_id = id_map.resolve(
            _item_chapter_ref(assignment), _item_chapter_order(assignment), _item_chapter_position(assignment))
        fields = _assignment_fields(assignment, index, chapter_id)
        assignment_id = assignment.get('id')

        if is_valid_uuid(assignment_id) and assignment_id in existing:
            row = existing[assignment_id]
            for key, value in fields.items():
                setattr(row, key, value)
            session.query(AssignmentQuestion).filter_by(assignment_id=row.id).delete(synchronize_session=False)
            kept.add(assignment_id)
        else:
            row = Assignment(id=generate_uuid(), course_id=course_id, **fields)
            session.add(row)
        session.flush()

        stats['questions'] += _insert_questions(session, row.id, assignment.get('questions'))
        stats['assignments'] += 1

    removed = [aid for aid in existing if aid not in kept]
    if removed:
        session.query(AssignmentQuestion).filter(AssignmentQuestion.assignment_id.in_(removed)).delete(synchronize_session=False)
        session.query(Submission).filter(Submission.assignment_id.in_(removed)).delete(synchronize_session=False)
        session.query(Assignment).filter(Assignment.id.in_(removed)).delete(synchronize_session=False)
        stats['deleted'] = len(removed)

    session.flush()
    return stats


# ===== SCHEDULES =====

def parse_datetime(value):
    """Parse an ISO date or datetime into a naive UTC datetime"""
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = date_parser.isoparse(str(value).strip())
        except ValueError:
            raise ValidationError("date", f"'{value}' is not a valid ISO date")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(tz.UTC).replace(tzinfo=None)
    return parsed


def build_schedule_rows(course_id, chapter_ids, scheduling):
    """
    Release schedule for the chapters in order

    Daily releases chapter i at start + i days, Weekly at start + 7i,
    Bi-weekly at start + 14i; next_release is one interval later, and None
    for the last chapter.
    """
    release_type = scheduling.get('release_type')
    if release_type not in RELEASE_INTERVAL_DAYS:
        raise ValidationError("scheduling.release_type", f"must be one of {', '.join(RELEASE_INTERVAL_DAYS)}")

    start = parse_datetime(scheduling['start_date']) if scheduling.get('start_date') else datetime.utcnow()
    interval = RELEASE_INTERVAL_DAYS[release_type]

    rows = []
    last = len(chapter_ids) - 1
    for index, chapter_id in enumerate(chapter_ids):
        release_date = start + timedelta(days=interval * index)
        rows.append(CourseSchedule(
            course_id=course_id,
            chapter_id=chapter_id,
            release_type=release_type,
            release_date=release_date,
            next_release=release_date + timedelta(days=interval) if index < last else None,
        ))
    return rows


def has_release_type(scheduling):
    return isinstance(scheduling, dict) and bool(scheduling.get('release_type'))


def replace_schedules(session, course_id, chapter_ids, scheduling):
    """
    Swap the course's release schedule for one built from scheduling

    Does nothing unless scheduling names a release_type.

    Returns:
        int: schedule rows written, or None when nothing was replaced
    """
    if not has_release_type(scheduling):
        return None
    rows = build_schedule_rows(course_id, chapter_ids, scheduling)
    session.query(CourseSchedule).filter_by(course_id=course_id).delete(synchronize_session=False)
    session.add_all(rows)
    session.flush()
    return len(rows)


# ===== TOTALS AND COUNTS =====

def recompute_course_totals(session, course):
    """Refresh the denormalized chapter/video/material/assignment counters"""
    chapter_ids = [r[0] for r in session.query(Chapter.id).filter_by(course_id=course.id).all()]
    course.num_chapters = len(chapter_ids)
    if chapter_ids:
        course.total_videos = session.query(func.count(ChapterContent.id)).filter(
            ChapterContent.chapter_id.in_(chapter_ids),
            ChapterContent.content_type.in_(VIDEO_CONTENT_TYPES)
        ).scalar() or 0
        course.total_materials = session.query(func.count(ChapterContent.id)).filter(
            ChapterContent.chapter_id.in_(chapter_ids),
            ChapterContent.content_type.in_(MATERIAL_CONTENT_TYPES)
        ).scalar() or 0
    else:
        course.total_videos = 0
        course.total_materials = 0
    course.total_assignments = session.query(func.count(Assignment.id)).filter_by(course_id=course.id).scalar() or 0
    session.flush()
    return course


def get_content_counts(session, course_ids):
    """course_id -> {chapters, videos, materials, assignments, students}"""
    from student_models import StudentCourse

    counts = {cid: {'chapters': 0, 'videos': 0, 'materials': 0, 'assignments': 0, 'students': 0} for cid in course_ids}
    if not course_ids:
        return counts

    for course_id, total in session.query(Chapter.course_id, func.count(Chapter.id)).filter(
            Chapter.course_id.in_(course_ids)).group_by(Chapter.course_id):
        counts[course_id]['chapters'] = total

    for course_id, content_type, total in session.query(
            Chapter.course_id, ChapterContent.content_type, func.count(ChapterContent.id)
    ).join(ChapterContent, ChapterContent.chapter_id == Chapter.id).filter(
            Chapter.course_id.in_(course_ids)).group_by(Chapter.course_id, ChapterContent.content_type):
        if content_type in VIDEO_CONTENT_TYPES:
            counts[course_id]['videos'] += total
        elif content_type in MATERIAL_CONTENT_TYPES:
            counts[course_id]['materials'] += total

    for course_id, total in session.query(Assignment.course_id, func.count(Assignment.id)).filter(
            Assignment.course_id.in_(course_ids)).group_by(Assignment.course_id):
        counts[course_id]['assignments'] = total

    for course_id, total in session.query(StudentCourse.course_id, func.count(StudentCourse.id)).filter(
            StudentCourse.course_id.in_(course_ids)).group_by(StudentCourse.course_id):
        counts[course_id]['students'] = total

    return counts


# ===== CREATE / UPDATE =====

def _course_scalar_fields(data):
    fields = {}
    for key in ('description', 'grade', 'subject', 'thumbnail_url', 'status'):
        if key in data:
            fields[key] = data.get(key)
    difficulty = data.get('difficulty_level') or data.get('difficulty')
    if difficulty:
        fields['difficulty_level'] = RequestValidator.validate_difficulty(difficulty)
    if 'duration_weeks' in data:
        fields['duration_weeks'] = RequestValidator.validate_duration_weeks(data.get('duration_weeks'))
    return fields


def create_course(session, data, created_by=None):
    """
    Create a course with its access rows, chapters, contents, assignments and
    release schedule in the caller's transaction

    Args:
        session: Database session
        data: Request JSON
        created_by: id of the admin creating the course

    Returns:
        tuple: (Course, ChapterIdMap)

    Raises:
        ValidationError for bad input (nothing is written)
    """
    school_ids = clean_school_ids(data.get('school_ids'))
    grades = clean_grades(data.get('grades'))
    name = (data.get('name') or data.get('title') or '').strip()

    if not name:
        raise ValidationError("name", "Course name or title is required")
    if not school_ids:
        raise ValidationError("school_ids", "At least one valid school is required")
    if not grades:
        raise ValidationError("grades", "At least one grade is required")

    invalid = find_invalid_school_ids(session, school_ids)
    if invalid:
        raise ValidationError("school_ids", f"Invalid school IDs: {', '.join(invalid)}")

    fields = _course_scalar_fields(data)
    is_published = bool(data.get('is_published', False))

    course_id = data.get('id')
    if not is_valid_uuid(course_id) or session.query(Course.id).filter_by(id=course_id).first():
        course_id = generate_uuid()

    course = Course(
        id=course_id,
        name=name,
        course_name=name,
        title=(data.get('title') or name).strip(),
        school_id=school_ids[0],
        is_published=is_published,
        published_at=datetime.utcnow() if is_published else None,
        created_by=created_by,
        **fields
    )
    if is_published:
        course.status = 'Published'
    session.add(course)
    session.flush()

    replace_course_access(session, course.id, school_ids, grades)
    id_map = insert_chapters(session, course.id, data.get('chapters'))

    contents = derive_contents(data)
    if contents:
        upsert_contents(session, course.id, contents, id_map)
    if data.get('assignments'):
        write_assignments(session, course.id, data.get('assignments'), id_map)
    if data.get('scheduling'):
        replace_schedules(session, course.id, id_map.chapter_ids, data.get('scheduling'))

    recompute_course_totals(session, course)
    logger.info(f"Created course {course.id} with {course.num_chapters} chapters")
    return course, id_map


def update_course(session, course, data):
    """
    Apply a partial update to a course and its nested structure

    Only the sections present in the payload are touched: scalar fields,
    access (school_ids/grades), chapters, contents, assignments, scheduling.

    Returns:
        tuple: (ChapterIdMap, summary dict)
    """
    summary = {}

    name = data.get('name') or data.get('course_name')
    if name is not None:
        name = name.strip()
        if not name:
            raise ValidationError("name", "cannot be empty")
        course.name = name
        course.course_name = name
    if data.get('title'):
        course.title = data['title'].strip()
    for key, value in _course_scalar_fields(data).items():
        setattr(course, key, value)

    if 'school_ids' in data or 'grades' in data:
        school_ids = clean_school_ids(data.get('school_ids'))
        grades = clean_grades(data.get('grades'))
        if not school_ids or not grades:
            raise ValidationError("course_access", "At least one school and one grade are required")
        invalid = find_invalid_school_ids(session, school_ids)
        if invalid:
            raise ValidationError("school_ids", f"Invalid school IDs: {', '.join(invalid)}")
        summary['course_access'] = len(replace_course_access(session, course.id, school_ids, grades))

    if data.get('chapters') is not None:
        id_map, deleted = upsert_chapters(session, course.id, data.get('chapters'))
        summary['chapters_deleted'] = deleted
    else:
        id_map = load_chapter_map(session, course.id)

    contents = derive_contents(data)
    if contents is not None:
        written, removed = upsert_contents(session, course.id, contents, id_map)
        summary['contents_written'] = written
        summary['contents_deleted'] = removed

    if data.get('assignments') is not None:
        summary['assignments'] = write_assignments(session, course.id, data.get('assignments'), id_map)

    if has_release_type(data.get('scheduling')):
        summary['schedules'] = replace_schedules(session, course.id, id_map.chapter_ids, data.get('scheduling'))

    course.updated_at = datetime.utcnow()
    recompute_course_totals(session, course)
    return id_map, summary


def set_publish_state(course, is_published):
    course.is_published = bool(is_published)
    course.status = 'Published' if course.is_published else 'Draft'
    course.published_at = datetime.utcnow() if course.is_published else None
    return course


# ===== SERIALIZATION AND VERSIONS =====

def serialize_course_tree(session, course):
    """Course with access, chapters (and contents), assignments (and questions), schedules"""
    data = course.to_dict()
    data['course_access'] = get_course_access_map(session, [course.id])[course.id]

    chapters = session.query(Chapter).filter_by(course_id=course.id).order_by(Chapter.order_index).all()
    chapter_ids = [c.id for c in chapters]
    contents_by_chapter = {cid: [] for cid in chapter_ids}
    if chapter_ids:
        for content in session.query(ChapterContent).filter(
                ChapterContent.chapter_id.in_(chapter_ids)).order_by(ChapterContent.order_index):
            contents_by_chapter[content.chapter_id].append(content.to_dict())

    data['chapters'] = []
    for chapter in chapters:
        item = chapter.to_dict()
        item['contents'] = contents_by_chapter.get(chapter.id, [])
        data['chapters'].append(item)

    assignments = session.query(Assignment).filter_by(course_id=course.id).order_by(Assignment.order_index).all()
    data['assignments'] = []
    for assignment in assignments:
        item = assignment.to_dict()
        item['questions'] = [
            q.to_dict() for q in session.query(AssignmentQuestion).filter_by(
                assignment_id=assignment.id).order_by(AssignmentQuestion.order_index)
        ]
        data['assignments'].append(item)

    data['schedules'] = [
        s.to_dict() for s in session.query(CourseSchedule).filter_by(
            course_id=course.id).order_by(CourseSchedule.release_date)
    ]
    return data


def create_course_version(session, course, changes_summary=None, created_by=None):
    """Store a JSON snapshot of the course tree under the next version number"""
    current = session.query(func.max(CourseVersion.version_number)).filter_by(course_id=course.id).scalar() or 0
    version = CourseVersion(
        course_id=course.id,
        version_number=current + 1,
        changes_summary=changes_summary,
        snapshot=json.dumps(serialize_course_tree(session, course), default=str),
        created_by=created_by,
    )
    session.add(version)
    session.flush()
    return version

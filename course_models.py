"""
Course Models
Courses, school/grade access, chapters, chapter contents, assignments,
assignment questions, release schedules and version snapshots
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey, Index, UniqueConstraint
from datetime import datetime
from models import Base, generate_uuid, load_json, dump_json, iso

VIDEO_CONTENT_TYPES = ('video', 'video_link')
MATERIAL_CONTENT_TYPES = ('pdf', 'file', 'image', 'audio')


class Course(Base):
    __tablename__ = 'courses'
    __table_args__ = (
        Index('idx_course_status', 'status'),
        Index('idx_course_created', 'created_at'),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    course_name = Column(String(255))
    title = Column(String(255))
    description = Column(Text)
    school_id = Column(String(36), ForeignKey('schools.id', ondelete='SET NULL'), nullable=True)
    grade = Column(String(50))
    subject = Column(String(100))
    difficulty_level = Column(String(20), default='Beginner')
    duration_weeks = Column(Integer)
    status = Column(String(20), default='Draft')
    is_published = Column(Boolean, default=False)
    published_at = Column(DateTime, nullable=True)
    thumbnail_url = Column(String(500))

    # Denormalized totals, recomputed after every structural change
    num_chapters = Column(Integer, default=0)
    total_videos = Column(Integer, default=0)
    total_materials = Column(Integer, default=0)
    total_assignments = Column(Integer, default=0)

    created_by = Column(String(36), ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def display_status(self):
        if self.is_published:
            return 'Published'
        return self.status or 'Draft'

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'course_name': self.course_name or self.name,
            'title': self.title or self.name,
            'description': self.description,
            'school_id': self.school_id,
            'grade': self.grade,
            'subject': self.subject,
            'difficulty_level': self.difficulty_level,
            'duration_weeks': self.duration_weeks,
            'status': self.display_status,
            'is_published': bool(self.is_published),
            'published_at': iso(self.published_at),
            'thumbnail_url': self.thumbnail_url,
            'num_chapters': self.num_chapters or 0,
            'total_videos': self.total_videos or 0,
            'total_materials': self.total_materials or 0,
            'total_assignments': self.total_assignments or 0,
            'created_by': self.created_by,
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at),
        }

    def __repr__(self):
        return f'<Course {self.name}>'


class CourseAccess(Base):
    """Which (school, grade) pairs can see a course"""
    __tablename__ = 'course_access'
    __table_args__ = (
        UniqueConstraint('course_id', 'school_id', 'grade', name='uq_course_access'),
        Index('idx_course_access_school_grade', 'school_id', 'grade'),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    course_id = Column(String(36), ForeignKey('courses.id', ondelete='CASCADE'), nullable=False)
    school_id = Column(String(36), ForeignKey('schools.id', ondelete='CASCADE'), nullable=False)
    grade = Column(String(50), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'course_id': self.course_id,
            'school_id': self.school_id,
            'grade': self.grade,
        }


class Chapter(Base):
    __tablename__ = 'chapters'
    __table_args__ = (
        Index('idx_chapter_course_order', 'course_id', 'order_index'),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    course_id = Column(String(36), ForeignKey('courses.id', ondelete='CASCADE'), nullable=False)
    title = Column(String(255), nullable=False)
    name = Column(String(255))
    description = Column(Text)
    order_index = Column(Integer, default=1)
    order_number = Column(Integer)
    learning_outcomes = Column(Text)  # JSON array
    is_published = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def outcomes(self):
        return load_json(self.learning_outcomes, [])

    @outcomes.setter
    def outcomes(self, values):
        self.learning_outcomes = dump_json(list(values or []))

    def to_dict(self):
        return {
            'id': self.id,
            'course_id': self.course_id,
            'title': self.title,
            'name': self.name or self.title,
            'description': self.description,
            'order_index': self.order_index,
            'order_number': self.order_number or self.order_index,
            'learning_outcomes': self.outcomes,
            'is_published': bool(self.is_published),
        }


class ChapterContent(Base):
    __tablename__ = 'chapter_contents'
    __table_args__ = (
        Index('idx_content_chapter', 'chapter_id'),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    chapter_id = Column(String(36), ForeignKey('chapters.id', ondelete='CASCADE'), nullable=False)
    course_id = Column(String(36), ForeignKey('courses.id', ondelete='CASCADE'), nullable=True)
    content_type = Column(String(30), nullable=False)  # video, video_link, pdf, file, image, audio, text, quiz
    title = Column(String(255), nullable=False)
    content_url = Column(String(1000))
    content_text = Column(Text)
    duration_minutes = Column(Integer)
    storage_path = Column(String(500))
    file_size = Column(Integer)
    order_index = Column(Integer, default=1)
    is_published = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'chapter_id': self.chapter_id,
            'course_id': self.course_id,
            'content_type': self.content_type,
            'title': self.title,
            'content_url': self.content_url,
            'content_text': self.content_text,
            'duration_minutes': self.duration_minutes,
            'storage_path': self.storage_path,
            'file_size': self.file_size,
            'order_index': self.order_index,
            'is_published': bool(self.is_published),
        }


class Assignment(Base):
    __tablename__ = 'assignments'
    __table_args__ = (
        Index('idx_assignment_course', 'course_id'),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    course_id = Column(String(36), ForeignKey('courses.id', ondelete='CASCADE'), nullable=False)
    chapter_id = Column(String(36), ForeignKey('chapters.id', ondelete='SET NULL'), nullable=True)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    assignment_type = Column(String(30), default='mcq')
    max_marks = Column(Integer, default=100)
    max_attempts = Column(Integer, nullable=True)
    due_date = Column(DateTime, nullable=True)
    auto_grading_enabled = Column(Boolean, default=False)
    is_published = Column(Boolean, default=True)
    order_index = Column(Integer, default=1)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'course_id': self.course_id,
            'chapter_id': self.chapter_id,
            'title': self.title,
            'description': self.description,
            'assignment_type': self.assignment_type,
            'max_marks': self.max_marks,
            'max_score': self.max_marks,
            'max_attempts': self.max_attempts,
            'due_date': iso(self.due_date),
            'auto_grading_enabled': bool(self.auto_grading_enabled),
            'is_published': bool(self.is_published),
            'order_index': self.order_index,
        }


class AssignmentQuestion(Base):
    __tablename__ = 'assignment_questions'
    __table_args__ = (
        Index('idx_question_assignment_order', 'assignment_id', 'order_index'),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    assignment_id = Column(String(36), ForeignKey('assignments.id', ondelete='CASCADE'), nullable=False)
    question_type = Column(String(30), default='mcq')  # mcq, essay, true_false, short_answer, fill_blank
    question_text = Column(Text, nullable=False)
    options = Column(Text)  # JSON array
    correct_answer = Column(Text)  # JSON value: index, text, bool or list
    marks = Column(Integer, default=1)
    explanation = Column(Text)
    order_index = Column(Integer, default=0)

    @property
    def option_list(self):
        return load_json(self.options, [])

    @option_list.setter
    def option_list(self, values):
        self.options = dump_json(list(values or []))

    @property
    def answer(self):
        return load_json(self.correct_answer)

    @answer.setter
    def answer(self, value):
        self.correct_answer = dump_json(value)

    def to_dict(self, include_answer=True):
        data = {
            'id': self.id,
            'assignment_id': self.assignment_id,
            'question_type': self.question_type,
            'question_text': self.question_text,
            'options': self.option_list,
            'marks': self.marks,
            'order_index': self.order_index,
        }
        if include_answer:
            data['correct_answer'] = self.answer
            data['explanation'] = self.explanation
        return data


class CourseSchedule(Base):
    __tablename__ = 'course_schedules'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    course_id = Column(String(36), ForeignKey('courses.id', ondelete='CASCADE'), nullable=False)
    chapter_id = Column(String(36), ForeignKey('chapters.id', ondelete='CASCADE'), nullable=False)
    release_type = Column(String(20), nullable=False)  # Daily, Weekly, Bi-weekly
    release_date = Column(DateTime, nullable=False)
    next_release = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'course_id': self.course_id,
            'chapter_id': self.chapter_id,
            'release_type': self.release_type,
            'release_date': iso(self.release_date),
            'next_release': iso(self.next_release),
        }


class CourseVersion(Base):
    __tablename__ = 'course_versions'
    __table_args__ = (
        UniqueConstraint('course_id', 'version_number', name='uq_course_version'),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    course_id = Column(String(36), ForeignKey('courses.id', ondelete='CASCADE'), nullable=False)
    version_number = Column(Integer, nullable=False)
    changes_summary = Column(Text)
    snapshot = Column(Text)  # JSON copy of the course tree
    created_by = Column(String(36), ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self, include_snapshot=False):
        data = {
            'id': self.id,
            'course_id': self.course_id,
            'version_number': self.version_number,
            'changes_summary': self.changes_summary,
            'created_by': self.created_by,
            'created_at': iso(self.created_at),
        }
        if include_snapshot:
            data['snapshot'] = load_json(self.snapshot, {})
        return data

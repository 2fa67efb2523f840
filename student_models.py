"""
Student Models
Student records, school enrolments, course enrolments, chapter progress and
assignment submissions
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey, Float, Index, UniqueConstraint
from datetime import datetime
from models import Base, generate_uuid, load_json, dump_json, iso


class Student(Base):
    """Student record linked to a user profile"""
    __tablename__ = 'students'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), unique=True, nullable=False)
    school_id = Column(String(36), ForeignKey('schools.id', ondelete='SET NULL'), nullable=True)
    student_code = Column(String(50))
    full_name = Column(String(200), nullable=False)
    email = Column(String(120), nullable=False)
    grade = Column(String(50), default='Not Specified')
    phone = Column(String(20))
    address = Column(Text)
    parent_name = Column(String(200))
    parent_phone = Column(String(20))
    status = Column(String(20), default='Active')
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'school_id': self.school_id,
            'student_code': self.student_code,
            'full_name': self.full_name,
            'email': self.email,
            'grade': self.grade,
            'phone': self.phone,
            'parent_name': self.parent_name,
            'parent_phone': self.parent_phone,
            'status': self.status,
            'created_at': iso(self.created_at),
        }

    def __repr__(self):
        return f'<Student {self.full_name} ({self.grade})>'


class StudentSchool(Base):
    __tablename__ = 'student_schools'
    __table_args__ = (
        UniqueConstraint('student_id', 'school_id', name='uq_student_school'),
        Index('idx_student_school_grade', 'school_id', 'grade'),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    student_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    school_id = Column(String(36), ForeignKey('schools.id', ondelete='CASCADE'), nullable=False)
    grade = Column(String(50), nullable=False)
    joining_code = Column(String(50))
    is_active = Column(Boolean, default=True)
    enrolled_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'student_id': self.student_id,
            'school_id': self.school_id,
            'grade': self.grade,
            'joining_code': self.joining_code,
            'is_active': self.is_active,
            'enrolled_at': iso(self.enrolled_at),
        }


class StudentCourse(Base):
    __tablename__ = 'student_courses'
    __table_args__ = (
        UniqueConstraint('student_id', 'course_id', name='uq_student_course'),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    student_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    course_id = Column(String(36), ForeignKey('courses.id', ondelete='CASCADE'), nullable=False)
    enrolled_at = Column(DateTime, default=datetime.utcnow)
    progress_percentage = Column(Float, default=0.0)
    is_completed = Column(Boolean, default=False)
    completed_at = Column(DateTime, nullable=True)

    def to_dict(self):
        return {
            'id': self.id,
            'student_id': self.student_id,
            'course_id': self.course_id,
            'enrolled_at': iso(self.enrolled_at),
            'progress_percentage': self.progress_percentage or 0.0,
            'is_completed': bool(self.is_completed),
            'completed_at': iso(self.completed_at),
        }


class CourseProgress(Base):
    """Per-chapter progress of a student"""
    __tablename__ = 'course_progress'
    __table_args__ = (
        UniqueConstraint('student_id', 'chapter_id', name='uq_progress_student_chapter'),
        Index('idx_progress_student_course', 'student_id', 'course_id'),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    student_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    course_id = Column(String(36), ForeignKey('courses.id', ondelete='CASCADE'), nullable=False)
    chapter_id = Column(String(36), ForeignKey('chapters.id', ondelete='CASCADE'), nullable=False)
    completed = Column(Boolean, default=False)
    completed_at = Column(DateTime, nullable=True)
    time_spent_minutes = Column(Integer, default=0)
    progress_percentage = Column(Float, default=0.0)
    last_accessed = Column(DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'student_id': self.student_id,
            'course_id': self.course_id,
            'chapter_id': self.chapter_id,
            'completed': bool(self.completed),
            'completed_at': iso(self.completed_at),
            'time_spent_minutes': self.time_spent_minutes or 0,
            'progress_percentage': self.progress_percentage or 0.0,
            'last_accessed': iso(self.last_accessed),
        }


class Submission(Base):
    """Assignment submission; one row per student and assignment, updated on resubmit"""
    __tablename__ = 'submissions'
    __table_args__ = (
        Index('idx_submission_assignment_student', 'assignment_id', 'student_id'),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    assignment_id = Column(String(36), ForeignKey('assignments.id', ondelete='CASCADE'), nullable=False)
    student_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    answers_json = Column(Text)  # JSON object keyed by question index
    file_url = Column(String(500))
    text_content = Column(Text)
    status = Column(String(20), default='submitted')  # draft, submitted, graded, returned
    grade = Column(Float, nullable=True)
    feedback = Column(Text)
    attempts = Column(Integer, default=1)
    submitted_at = Column(DateTime, default=datetime.utcnow)
    graded_at = Column(DateTime, nullable=True)

    @property
    def answers(self):
        return load_json(self.answers_json)

    @answers.setter
    def answers(self, value):
        self.answers_json = dump_json(value) if value else None

    def to_dict(self):
        return {
            'id': self.id,
            'assignment_id': self.assignment_id,
            'student_id': self.student_id,
            'answers_json': self.answers,
            'file_url': self.file_url,
            'text_content': self.text_content,
            'status': self.status,
            'grade': self.grade,
            'feedback': self.feedback,
            'attempts': self.attempts or 1,
            'submitted_at': iso(self.submitted_at),
            'graded_at': iso(self.graded_at),
        }

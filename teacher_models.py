"""
Teacher Models
Teacher records, school assignments, class assignments and daily teaching reports
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey, Date, Index, UniqueConstraint
from datetime import datetime
from models import Base, generate_uuid, load_json, dump_json, iso


class Teacher(Base):
    """Teacher record linked to a user profile"""
    __tablename__ = 'teachers'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), unique=True, nullable=False)
    teacher_code = Column(String(50), unique=True)
    full_name = Column(String(200), nullable=False)
    email = Column(String(120), nullable=False)
    phone = Column(String(20))
    address = Column(Text)
    qualification = Column(String(200))
    experience_years = Column(Integer, default=0)
    specialization = Column(String(200))
    status = Column(String(20), default='Active')
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'teacher_code': self.teacher_code,
            'full_name': self.full_name,
            'email': self.email,
            'phone': self.phone,
            'qualification': self.qualification,
            'experience_years': self.experience_years,
            'specialization': self.specialization,
            'status': self.status,
            'created_at': iso(self.created_at),
        }

    def __repr__(self):
        return f'<Teacher {self.full_name}>'


class TeacherSchool(Base):
    """Assignment of a teacher (user) to a school with grades and subjects"""
    __tablename__ = 'teacher_schools'
    __table_args__ = (
        UniqueConstraint('teacher_id', 'school_id', name='uq_teacher_school'),
        Index('idx_teacher_school_school', 'school_id'),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    teacher_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    school_id = Column(String(36), ForeignKey('schools.id', ondelete='CASCADE'), nullable=False)
    grades_assigned = Column(Text)  # JSON array
    subjects = Column(Text)  # JSON array
    is_primary = Column(Boolean, default=False)
    working_days_per_week = Column(Integer, default=5)
    max_students_per_class = Column(Integer, default=40)
    assigned_at = Column(DateTime, default=datetime.utcnow)

    @property
    def grades(self):
        return load_json(self.grades_assigned, [])

    @grades.setter
    def grades(self, values):
        self.grades_assigned = dump_json(list(values or []))

    @property
    def subject_list(self):
        return load_json(self.subjects, [])

    @subject_list.setter
    def subject_list(self, values):
        self.subjects = dump_json(list(values or []))

    def to_dict(self):
        return {
            'id': self.id,
            'teacher_id': self.teacher_id,
            'school_id': self.school_id,
            'grades_assigned': self.grades,
            'subjects': self.subject_list,
            'is_primary': self.is_primary,
            'working_days_per_week': self.working_days_per_week,
            'max_students_per_class': self.max_students_per_class,
            'assigned_at': iso(self.assigned_at),
        }


class TeacherClass(Base):
    __tablename__ = 'teacher_classes'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    teacher_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    class_id = Column(String(36), ForeignKey('classes.id', ondelete='CASCADE'), nullable=False)
    school_id = Column(String(36), ForeignKey('schools.id', ondelete='CASCADE'), nullable=False)
    subject = Column(String(100))
    is_primary = Column(Boolean, default=False)
    assigned_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'teacher_id': self.teacher_id,
            'class_id': self.class_id,
            'school_id': self.school_id,
            'subject': self.subject,
            'is_primary': self.is_primary,
        }


class TeacherReport(Base):
    """Daily teaching report filed by a teacher for a school"""
    __tablename__ = 'teacher_reports'
    __table_args__ = (
        Index('idx_teacher_report_school_date', 'school_id', 'report_date'),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    teacher_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    school_id = Column(String(36), ForeignKey('schools.id', ondelete='CASCADE'), nullable=False)
    class_id = Column(String(36), ForeignKey('classes.id', ondelete='SET NULL'), nullable=True)
    grade = Column(String(50))
    report_date = Column(Date, nullable=False)
    topics_covered = Column(Text)
    activities = Column(Text)
    homework_assigned = Column(Text)
    student_attendance_count = Column(Integer)
    notes = Column(Text)
    status = Column(String(20), default='Submitted')  # Submitted, Reviewed
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'teacher_id': self.teacher_id,
            'school_id': self.school_id,
            'class_id': self.class_id,
            'grade': self.grade,
            'report_date': iso(self.report_date),
            'topics_covered': self.topics_covered,
            'activities': self.activities,
            'homework_assigned': self.homework_assigned,
            'student_attendance_count': self.student_attendance_count,
            'notes': self.notes,
            'status': self.status,
            'created_at': iso(self.created_at),
        }

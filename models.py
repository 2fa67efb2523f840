"""
Core Models
Schools (tenants), user profiles, school admins, joining codes, classes,
attendance and password reset requests
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey, Date, Index, UniqueConstraint
from sqlalchemy.orm import declarative_base
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash
from datetime import datetime
import json
import uuid

Base = declarative_base()


def generate_uuid():
    return str(uuid.uuid4())


def load_json(value, default=None):
    """Decode a JSON text column, falling back to default on bad data"""
    if value is None or value == '':
        return default
    try:
        return json.loads(value)
    except (TypeError, ValueError):
        return default


def dump_json(value):
    return json.dumps(value) if value is not None else None


def iso(value):
    return value.isoformat() if value else None


# ===== ROLES =====
ROLE_SUPER_ADMIN = 'super_admin'
ROLE_ADMIN = 'admin'
ROLE_SCHOOL_ADMIN = 'school_admin'
ROLE_TEACHER = 'teacher'
ROLE_STUDENT = 'student'

ADMIN_ROLES = (ROLE_ADMIN, ROLE_SUPER_ADMIN)
ACCOUNT_ROLES = (ROLE_ADMIN, ROLE_SCHOOL_ADMIN, ROLE_TEACHER, ROLE_STUDENT)


# ===== SCHOOL MODEL =====
class School(Base):
    __tablename__ = 'schools'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(200), nullable=False)
    address = Column(Text)
    city = Column(String(100))
    state = Column(String(100))
    country = Column(String(100), default='India')
    phone = Column(String(20))
    email = Column(String(120))
    website = Column(String(255))
    principal_name = Column(String(200))
    grades_offered = Column(Text)  # JSON array of normalized grades
    school_type = Column(String(50))
    established_year = Column(Integer)
    logo_url = Column(String(500))
    is_active = Column(Boolean, default=True)
    created_by = Column(String(36), ForeignKey('users.id', ondelete='SET NULL', use_alter=True, name='fk_school_created_by'), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def grades(self):
        return load_json(self.grades_offered, [])

    @grades.setter
    def grades(self, values):
        self.grades_offered = dump_json(list(values or []))

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'address': self.address,
            'city': self.city,
            'state': self.state,
            'country': self.country,
            'phone': self.phone,
            'email': self.email,
            'website': self.website,
            'principal_name': self.principal_name,
            'grades_offered': self.grades,
            'school_type': self.school_type,
            'established_year': self.established_year,
            'logo_url': self.logo_url,
            'is_active': self.is_active,
            'created_by': self.created_by,
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at),
        }

    def __repr__(self):
        return f'<School {self.name}>'


# ===== USER (PROFILE) MODEL =====
class User(Base, UserMixin):
    __tablename__ = 'users'
    __table_args__ = (
        Index('idx_user_role', 'role'),
        Index('idx_user_school', 'school_id'),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(120), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(200), nullable=False)
    role = Column(String(20), nullable=False, default=ROLE_STUDENT)  # super_admin, admin, school_admin, teacher, student
    school_id = Column(String(36), ForeignKey('schools.id', ondelete='SET NULL'), nullable=True)
    phone = Column(String(20))
    address = Column(Text)
    is_active = Column(Boolean, default=True)
    force_password_change = Column(Boolean, default=False)
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    @property
    def is_admin(self):
        return self.role in ADMIN_ROLES

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'full_name': self.full_name,
            'role': self.role,
            'school_id': self.school_id,
            'phone': self.phone,
            'address': self.address,
            'is_active': self.is_active,
            'force_password_change': bool(self.force_password_change),
            'last_login': iso(self.last_login),
            'created_at': iso(self.created_at),
        }

    def __repr__(self):
        return f'<User {self.email} ({self.role})>'


# ===== SCHOOL ADMIN MODEL =====
class SchoolAdmin(Base):
    __tablename__ = 'school_admins'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    school_id = Column(String(36), ForeignKey('schools.id', ondelete='CASCADE'), nullable=False)
    name = Column(String(200))
    email = Column(String(120))
    phone = Column(String(20))
    permissions = Column(Text)  # JSON object
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'school_id': self.school_id,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'permissions': load_json(self.permissions, {}),
            'is_active': self.is_active,
            'created_at': iso(self.created_at),
        }


# ===== JOINING CODES =====
class JoinCode(Base):
    __tablename__ = 'join_codes'
    __table_args__ = (
        Index('idx_join_code_school', 'school_id'),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    code = Column(String(50), unique=True, nullable=False)
    school_id = Column(String(36), ForeignKey('schools.id', ondelete='CASCADE'), nullable=False)
    grade = Column(String(50), nullable=False)
    usage_type = Column(String(20), default='multiple')  # single, multiple
    times_used = Column(Integer, default=0)
    max_uses = Column(Integer, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, default=True)
    last_used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    @property
    def is_expired(self):
        return bool(self.expires_at and self.expires_at < datetime.utcnow())

    @property
    def is_exhausted(self):
        return bool(self.max_uses and (self.times_used or 0) >= self.max_uses)

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'school_id': self.school_id,
            'grade': self.grade,
            'usage_type': self.usage_type,
            'times_used': self.times_used or 0,
            'max_uses': self.max_uses,
            'expires_at': iso(self.expires_at),
            'is_active': self.is_active,
            'last_used_at': iso(self.last_used_at),
            'created_at': iso(self.created_at),
        }


# ===== CLASSES =====
class Class(Base):
    __tablename__ = 'classes'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    school_id = Column(String(36), ForeignKey('schools.id', ondelete='CASCADE'), nullable=False)
    grade = Column(String(50), nullable=False)
    class_name = Column(String(100), nullable=False)
    subject = Column(String(100))
    academic_year = Column(String(20))
    max_students = Column(Integer, default=40)
    room_number = Column(String(20))
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'school_id': self.school_id,
            'grade': self.grade,
            'class_name': self.class_name,
            'subject': self.subject,
            'academic_year': self.academic_year,
            'max_students': self.max_students,
            'room_number': self.room_number,
            'is_active': self.is_active,
        }

    def __repr__(self):
        return f'<Class {self.class_name} ({self.grade})>'


# ===== ATTENDANCE =====
class Attendance(Base):
    """Daily attendance for staff; one row per user, school and date"""
    __tablename__ = 'attendance'
    __table_args__ = (
        UniqueConstraint('user_id', 'school_id', 'date', name='uq_attendance_user_school_date'),
        Index('idx_attendance_school_date', 'school_id', 'date'),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    school_id = Column(String(36), ForeignKey('schools.id', ondelete='CASCADE'), nullable=False)
    date = Column(Date, nullable=False)
    status = Column(String(30), nullable=False, default='Present')  # Present, Absent, Late, Half-Day, Leave-Approved
    check_in_time = Column(String(8))
    check_out_time = Column(String(8))
    remarks = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'school_id': self.school_id,
            'date': iso(self.date),
            'status': self.status,
            'check_in_time': self.check_in_time,
            'check_out_time': self.check_out_time,
            'remarks': self.remarks,
            'updated_at': iso(self.updated_at),
        }


# ===== PASSWORD RESET REQUESTS =====
RESET_STATUSES = ('pending', 'approved', 'rejected', 'completed')


class PasswordResetRequest(Base):
    __tablename__ = 'password_reset_requests'
    __table_args__ = (
        Index('idx_reset_status', 'status'),
        Index('idx_reset_user', 'user_id'),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    email = Column(String(120), nullable=False)
    user_role = Column(String(20))
    school_id = Column(String(36), ForeignKey('schools.id', ondelete='SET NULL'), nullable=True)
    status = Column(String(20), nullable=False, default='pending')
    requested_at = Column(DateTime, default=datetime.utcnow)
    approved_by = Column(String(36), ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    notes = Column(Text)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'email': self.email,
            'user_role': self.user_role,
            'school_id': self.school_id,
            'status': self.status,
            'requested_at': iso(self.requested_at),
            'approved_by': self.approved_by,
            'approved_at': iso(self.approved_at),
            'notes': self.notes,
        }

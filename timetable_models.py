"""
Timetable Models
School periods, rooms and the weekly class schedule built from them
"""

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, Time, ForeignKey, Enum, Index, UniqueConstraint
from datetime import datetime
import enum

from models import Base, generate_uuid, iso, load_json, dump_json


# ===== ENUMS =====

class DayOfWeekEnum(enum.Enum):
    MONDAY = 'Monday'
    TUESDAY = 'Tuesday'
    WEDNESDAY = 'Wednesday'
    THURSDAY = 'Thursday'
    FRIDAY = 'Friday'
    SATURDAY = 'Saturday'
    SUNDAY = 'Sunday'


DAYS_OF_WEEK = [day.value for day in DayOfWeekEnum]


def format_time(value):
    return value.strftime('%H:%M') if value else None


# ===== MODELS =====

class Period(Base):
    """Numbered teaching period with fixed start and end times"""
    __tablename__ = 'periods'
    __table_args__ = (
        UniqueConstraint('school_id', 'period_number', name='unique_school_period_number'),
        Index('idx_period_school', 'school_id'),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    school_id = Column(String(36), ForeignKey('schools.id', ondelete='CASCADE'), nullable=False)
    period_number = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Period {self.period_number} {self.start_time}-{self.end_time}>"

    def to_dict(self):
        return {
            'id': self.id,
            'school_id': self.school_id,
            'period_number': self.period_number,
            'start_time': format_time(self.start_time),
            'end_time': format_time(self.end_time),
            'is_active': self.is_active,
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at),
        }


class Room(Base):
    __tablename__ = 'rooms'
    __table_args__ = (
        UniqueConstraint('school_id', 'room_number', name='unique_school_room_number'),
        Index('idx_room_school', 'school_id'),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    school_id = Column(String(36), ForeignKey('schools.id', ondelete='CASCADE'), nullable=False)
    room_number = Column(String(50), nullable=False)
    room_name = Column(String(100))
    capacity = Column(Integer)
    location = Column(String(255))
    facilities_json = Column('facilities', Text)  # JSON array of strings
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def facilities(self):
        return load_json(self.facilities_json, [])

    @facilities.setter
    def facilities(self, value):
        self.facilities_json = dump_json(value or [])

    def __repr__(self):
        return f"<Room {self.room_number}>"

    def to_dict(self):
        return {
            'id': self.id,
            'school_id': self.school_id,
            'room_number': self.room_number,
            'room_name': self.room_name,
            'capacity': self.capacity,
            'location': self.location,
            'facilities': self.facilities,
            'is_active': self.is_active,
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at),
        }


class ClassSchedule(Base):
    """One weekly slot: a subject taught to a grade on a day, optionally tied to a period, room and teacher"""
    __tablename__ = 'class_schedules'
    __table_args__ = (
        Index('idx_schedule_school_day', 'school_id', 'day_of_week'),
        Index('idx_schedule_teacher', 'teacher_id'),
        Index('idx_schedule_room', 'room_id'),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    school_id = Column(String(36), ForeignKey('schools.id', ondelete='CASCADE'), nullable=False)
    class_id = Column(String(36), ForeignKey('classes.id', ondelete='SET NULL'), nullable=True)
    teacher_id = Column(String(36), ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    period_id = Column(String(36), ForeignKey('periods.id', ondelete='SET NULL'), nullable=True)
    room_id = Column(String(36), ForeignKey('rooms.id', ondelete='SET NULL'), nullable=True)
    subject = Column(String(100), nullable=False)
    grade = Column(String(50), nullable=False)
    day_of_week = Column(Enum(DayOfWeekEnum, values_callable=lambda obj: [e.value for e in obj]), nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    academic_year = Column(String(20))  # e.g., "2026-27"
    notes = Column(Text)
    created_by = Column(String(36), ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<ClassSchedule {self.grade} {self.subject} {self.day_of_week.value if self.day_of_week else ''}>"

    def to_dict(self):
        return {
            'id': self.id,
            'school_id': self.school_id,
            'class_id': self.class_id,
            'teacher_id': self.teacher_id,
            'period_id': self.period_id,
            'room_id': self.room_id,
            'subject': self.subject,
            'grade': self.grade,
            'day_of_week': self.day_of_week.value if self.day_of_week else None,
            'start_time': format_time(self.start_time),
            'end_time': format_time(self.end_time),
            'academic_year': self.academic_year,
            'notes': self.notes,
            'is_active': self.is_active,
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at),
        }

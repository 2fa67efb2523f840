"""
Leave Management Models
Teacher leave requests reviewed by school admins
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey, Index, Date, Enum
from datetime import datetime
import enum
from models import Base, generate_uuid, iso


class LeaveStatusEnum(enum.Enum):
    """Leave request status enumeration"""
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class TeacherLeave(Base):
    """Leave request filed by a teacher against one of their schools"""
    __tablename__ = 'teacher_leaves'
    __table_args__ = (
        Index('idx_leave_school_status', 'school_id', 'status'),
        Index('idx_leave_teacher', 'teacher_id'),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    teacher_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    school_id = Column(String(36), ForeignKey('schools.id', ondelete='CASCADE'), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    leave_type = Column(String(50), default='Personal')
    reason = Column(Text, nullable=False)
    total_days = Column(Integer, nullable=False)
    status = Column(Enum(LeaveStatusEnum, values_callable=lambda obj: [e.value for e in obj]),
                    default=LeaveStatusEnum.PENDING, nullable=False)
    substitute_required = Column(Boolean, default=False)

    # Review
    reviewed_by = Column(String(36), ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    approved_by = Column(String(36), ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    admin_remarks = Column(Text)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<TeacherLeave teacher_id={self.teacher_id} {self.start_date}..{self.end_date} {self.status.value}>"

    def to_dict(self):
        """Convert to dictionary for JSON responses"""
        return {
            'id': self.id,
            'teacher_id': self.teacher_id,
            'school_id': self.school_id,
            'start_date': iso(self.start_date),
            'end_date': iso(self.end_date),
            'leave_type': self.leave_type,
            'reason': self.reason,
            'total_days': self.total_days,
            'status': self.status.value if self.status else None,
            'substitute_required': bool(self.substitute_required),
            'reviewed_by': self.reviewed_by,
            'reviewed_at': iso(self.reviewed_at),
            'approved_by': self.approved_by,
            'approved_at': iso(self.approved_at),
            'admin_remarks': self.admin_remarks,
            'created_at': iso(self.created_at),
        }

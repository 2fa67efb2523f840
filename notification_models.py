"""
Notification Models
In-app notifications (one row per recipient) and recipient replies
"""

from sqlalchemy import Column, String, Text, DateTime, Boolean, ForeignKey, Index, UniqueConstraint
from datetime import datetime
from models import Base, generate_uuid, iso

NOTIFICATION_TYPES = ('info', 'warning', 'success', 'error', 'announcement', 'password_reset', 'leave')
NOTIFICATION_PRIORITIES = ('low', 'normal', 'high', 'urgent')


class Notification(Base):
    __tablename__ = 'notifications'
    __table_args__ = (
        Index('idx_notification_user_read', 'user_id', 'is_read'),
        Index('idx_notification_created', 'created_at'),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    school_id = Column(String(36), ForeignKey('schools.id', ondelete='CASCADE'), nullable=True)
    sender_id = Column(String(36), ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(30), default='info')
    priority = Column(String(20), default='normal')
    is_read = Column(Boolean, default=False)
    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'school_id': self.school_id,
            'sender_id': self.sender_id,
            'title': self.title,
            'message': self.message,
            'type': self.type,
            'priority': self.priority,
            'is_read': bool(self.is_read),
            'read_at': iso(self.read_at),
            'created_at': iso(self.created_at),
        }

    def __repr__(self):
        return f'<Notification {self.title} -> {self.user_id}>'


class NotificationReply(Base):
    """A recipient's single reply to a notification"""
    __tablename__ = 'notification_replies'
    __table_args__ = (
        UniqueConstraint('notification_id', 'user_id', name='uq_notification_reply_user'),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    notification_id = Column(String(36), ForeignKey('notifications.id', ondelete='CASCADE'), nullable=False)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    reply_text = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'notification_id': self.notification_id,
            'user_id': self.user_id,
            'reply_text': self.reply_text,
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at),
        }

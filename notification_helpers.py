"""
Notification Helper Functions
Fan-out of in-app notifications and recipient lookups
"""

import logging

from models import User, SchoolAdmin, ADMIN_ROLES, ROLE_SCHOOL_ADMIN
from notification_models import Notification, NotificationReply

logger = logging.getLogger(__name__)


def notify_users(session, user_ids, title, message, notification_type='info', priority='normal',
                 sender_id=None, school_id=None, send_email=False):
    """
    Create one notification row per recipient

    Args:
        session: Database session (caller commits)
        user_ids: Recipient user ids; duplicates are ignored
        title: Notification title
        message: Notification text
        notification_type: info, warning, success, error, announcement, password_reset, leave
        priority: low, normal, high, urgent
        sender_id: User who sent it, if any
        school_id: School the notification is scoped to, if any
        send_email: Also email a copy to recipients who have an address

    Returns:
        list of Notification
    """
    notifications = []
    seen = set()
    for user_id in user_ids:
        if not user_id or user_id in seen:
            continue
        seen.add(user_id)
        notification = Notification(
            user_id=user_id,
            school_id=school_id,
            sender_id=sender_id,
            title=title,
            message=message,
            type=notification_type,
            priority=priority,
        )
        session.add(notification)
        notifications.append(notification)
    session.flush()

    if send_email and notifications:
        from notification_email import send_notification_emails

        recipients = session.query(User.full_name, User.email).filter(User.id.in_(list(seen))).all()
        send_notification_emails(title, message, [(name, email) for name, email in recipients], priority)

    logger.info(f"Created {len(notifications)} notifications: {title[:60]}")
    return notifications


def get_admin_user_ids(session):
    rows = session.query(User.id).filter(User.role.in_(ADMIN_ROLES), User.is_active == True).all()
    return [r[0] for r in rows]


def get_school_admin_user_ids(session, school_id):
    """School admins of a school, from profiles and school_admins rows"""
    if not school_id:
        return []
    ids = [r[0] for r in session.query(User.id).filter(
        User.role == ROLE_SCHOOL_ADMIN,
        User.school_id == school_id,
        User.is_active == True
    ).all()]
    for (user_id,) in session.query(SchoolAdmin.user_id).filter_by(school_id=school_id, is_active=True).all():
        if user_id not in ids:
            ids.append(user_id)
    return ids


def resolve_recipients(session, user_ids=None, roles=None, school_id=None):
    """
    Recipient ids for a send request: explicit user ids, or every active
    user with one of the roles (optionally within one school)
    """
    if user_ids:
        rows = session.query(User.id).filter(User.id.in_(user_ids), User.is_active == True).all()
        return [r[0] for r in rows]

    if not roles:
        return []

    query = session.query(User.id).filter(User.role.in_(roles), User.is_active == True)
    if school_id:
        query = query.filter(User.school_id == school_id)
    ids = [r[0] for r in query.all()]

    if school_id:
        from student_models import StudentSchool
        from teacher_models import TeacherSchool

        if 'student' in roles:
            for (student_id,) in session.query(StudentSchool.student_id).filter_by(school_id=school_id, is_active=True):
                if student_id not in ids:
                    ids.append(student_id)
        if 'teacher' in roles:
            for (teacher_id,) in session.query(TeacherSchool.teacher_id).filter_by(school_id=school_id):
                if teacher_id not in ids:
                    ids.append(teacher_id)
    return ids


def get_replies_by_notification(session, notification_ids, user_id=None):
    """notification_id -> list of reply dicts (optionally only one user's)"""
    result = {}
    if not notification_ids:
        return result
    query = session.query(NotificationReply, User.full_name).join(
        User, User.id == NotificationReply.user_id
    ).filter(NotificationReply.notification_id.in_(notification_ids))
    if user_id:
        query = query.filter(NotificationReply.user_id == user_id)
    for reply, full_name in query.order_by(NotificationReply.created_at):
        item = reply.to_dict()
        item['user_name'] = full_name
        result.setdefault(reply.notification_id, []).append(item)
    return result


def list_sent_notifications(session, sender_id, limit=50):
    """Notifications a user sent, grouped by title/message/time with recipient counts"""
    rows = session.query(Notification).filter_by(sender_id=sender_id).order_by(
        Notification.created_at.desc()
    ).limit(limit * 20).all()

    grouped = []
    index = {}
    for n in rows:
        key = (n.title, n.message, n.created_at.replace(microsecond=0) if n.created_at else None)
        if key not in index:
            index[key] = len(grouped)
            item = n.to_dict()
            item['recipient_count'] = 0
            item['read_count'] = 0
            grouped.append(item)
        entry = grouped[index[key]]
        entry['recipient_count'] += 1
        if n.is_read:
            entry['read_count'] += 1
    return grouped[:limit]

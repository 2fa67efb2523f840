"""
Notification Routes
Recipient inbox, read state and replies, plus the shared send handler used
by the admin, school admin and teacher blueprints
"""

from flask import Blueprint, request, jsonify
from flask_login import current_user
from datetime import datetime
import logging

from db_single import get_session
from models import User
from notification_models import Notification, NotificationReply, NOTIFICATION_TYPES, NOTIFICATION_PRIORITIES
from extensions import limiter, RateLimitPresets
from auth_helpers import require_role, get_json_body, validation_error_response, is_admin_user
from validators import ValidationError, RequestValidator, validate_notification_data, MAX_REPLY_LENGTH
from pagination_helpers import (
    parse_pagination_params, pagination_meta, wants_cursor, parse_cursor_limit, apply_cursor, cursor_page
)

logger = logging.getLogger(__name__)

notification_bp = Blueprint('notifications', __name__, url_prefix='/api/notifications')


def send_from_request(allowed_roles, school_id=None, allowed_ids_fn=None):
    """
    Fan out a notification described by the request body

    Body: {title, message, type, priority, user_ids? | roles?, send_email?}

    Args:
        allowed_roles: Roles the sender may address
        school_id: School the notification is scoped to
        allowed_ids_fn: Optional callable(session) -> set of user ids the sender may reach

    Returns:
        Flask response tuple
    """
    from notification_helpers import notify_users, resolve_recipients

    data = get_json_body()
    try:
        validated = validate_notification_data(data)
    except ValidationError as e:
        return validation_error_response(e)

    if validated['type'] not in NOTIFICATION_TYPES:
        validated['type'] = 'info'
    if validated['priority'] not in NOTIFICATION_PRIORITIES:
        validated['priority'] = 'normal'

    user_ids = [u for u in data.get('user_ids') or [] if isinstance(u, str)]
    roles = [r for r in data.get('roles') or [] if r in allowed_roles]
    if not user_ids and not roles:
        return jsonify({'error': 'user_ids or roles are required'}), 400

    session_db = get_session()
    try:
        recipients = resolve_recipients(session_db, user_ids=user_ids, roles=roles, school_id=school_id)
        if allowed_ids_fn is not None:
            allowed = allowed_ids_fn(session_db)
            recipients = [r for r in recipients if r in allowed]
        recipients = [r for r in recipients if r != current_user.id]

        if not recipients:
            return jsonify({'error': 'No recipients found'}), 400

        notifications = notify_users(
            session_db, recipients, validated['title'], validated['message'],
            notification_type=validated['type'], priority=validated['priority'],
            sender_id=current_user.id, school_id=school_id,
            send_email=bool(data.get('send_email')),
        )
        session_db.commit()
        return jsonify({
            'success': True,
            'message': f'Notification sent to {len(notifications)} recipient(s)',
            'count': len(notifications),
        }), 201
    except Exception as e:
        session_db.rollback()
        logger.error(f"Error sending notification from {current_user.id}: {e}")
        return jsonify({'error': 'Failed to send notification'}), 500
    finally:
        session_db.close()


@notification_bp.route('/user', methods=['GET'])
@require_role()
@limiter.limit(RateLimitPresets.READ)
def user_notifications():
    """The logged-in user's notifications with their own replies"""
    from notification_helpers import get_replies_by_notification

    is_read = request.args.get('is_read')
    session_db = get_session()
    try:
        query = session_db.query(Notification).filter(Notification.user_id == current_user.id)
        if is_read in ('true', 'false'):
            query = query.filter(Notification.is_read == (is_read == 'true'))

        total = query.count()
        unread_count = session_db.query(Notification).filter(
            Notification.user_id == current_user.id,
            Notification.is_read == False
        ).count()

        if wants_cursor():
            limit = parse_cursor_limit()
            rows = apply_cursor(query, Notification, request.args.get('cursor'), limit).all()
            rows, pagination = cursor_page(rows, limit)
            pagination['total'] = total
        else:
            limit, offset = parse_pagination_params()
            rows = query.order_by(Notification.created_at.desc(), Notification.id.desc()).offset(offset).limit(limit).all()
            pagination = pagination_meta(total, limit, offset)

        ids = [n.id for n in rows]
        replies = get_replies_by_notification(session_db, ids, user_id=current_user.id)
        senders = {}
        sender_ids = {n.sender_id for n in rows if n.sender_id}
        if sender_ids:
            senders = dict(session_db.query(User.id, User.full_name).filter(User.id.in_(sender_ids)).all())

        data = []
        for n in rows:
            item = n.to_dict()
            item['sender_name'] = senders.get(n.sender_id)
            own = replies.get(n.id)
            item['my_reply'] = own[0] if own else None
            data.append(item)

        return jsonify({
            'success': True,
            'notifications': data,
            'unread_count': unread_count,
            'total': total,
            'pagination': pagination,
        })
    except Exception as e:
        logger.error(f"Error loading notifications for {current_user.id}: {e}")
        return jsonify({'error': 'Failed to fetch notifications'}), 500
    finally:
        session_db.close()


@notification_bp.route('/user', methods=['PATCH'])
@require_role()
@limiter.limit(RateLimitPresets.WRITE)
def mark_notifications():
    data = get_json_body()
    session_db = get_session()
    try:
        now = datetime.utcnow()
        if data.get('mark_all_read'):
            updated = session_db.query(Notification).filter(
                Notification.user_id == current_user.id,
                Notification.is_read == False
            ).update({Notification.is_read: True, Notification.read_at: now}, synchronize_session=False)
            session_db.commit()
            return jsonify({'success': True, 'updated': updated, 'message': 'All notifications marked as read'})

        notification_id = data.get('notification_id')
        is_read = data.get('is_read', True)
        if not notification_id or not isinstance(is_read, bool):
            return jsonify({'error': 'notification_id and boolean is_read are required'}), 400

        notification = session_db.query(Notification).filter_by(id=notification_id, user_id=current_user.id).first()
        if not notification:
            return jsonify({'error': 'Notification not found'}), 404

        notification.is_read = is_read
        notification.read_at = now if is_read else None
        session_db.commit()
        return jsonify({'success': True, 'notification': notification.to_dict()})
    except Exception as e:
        session_db.rollback()
        logger.error(f"Error updating notification state for {current_user.id}: {e}")
        return jsonify({'error': 'Failed to update notification'}), 500
    finally:
        session_db.close()


@notification_bp.route('/reply', methods=['POST'])
@require_role()
@limiter.limit(RateLimitPresets.WRITE)
def post_reply():
    """Create or update the user's single reply to a notification"""
    data = get_json_body()
    notification_id = data.get('notification_id')
    if not notification_id:
        return jsonify({'error': 'notification_id is required'}), 400
    try:
        reply_text = RequestValidator.validate_text(data.get('reply_text'), 'reply_text', 1, MAX_REPLY_LENGTH)
    except ValidationError as e:
        return validation_error_response(e)

    session_db = get_session()
    try:
        notification = session_db.query(Notification).filter_by(id=notification_id, user_id=current_user.id).first()
        if not notification:
            return jsonify({'error': 'Notification not found'}), 404

        reply = session_db.query(NotificationReply).filter_by(
            notification_id=notification_id, user_id=current_user.id
        ).first()
        if reply:
            reply.reply_text = reply_text
            reply.updated_at = datetime.utcnow()
            message = 'Reply updated successfully'
        else:
            reply = NotificationReply(notification_id=notification_id, user_id=current_user.id, reply_text=reply_text)
            session_db.add(reply)
            message = 'Reply sent successfully'

        session_db.commit()
        return jsonify({'success': True, 'message': message, 'reply': reply.to_dict()})
    except Exception as e:
        session_db.rollback()
        logger.error(f"Error saving reply for notification {notification_id}: {e}")
        return jsonify({'error': 'Failed to save reply'}), 500
    finally:
        session_db.close()


@notification_bp.route('/reply', methods=['GET'])
@require_role()
def get_replies():
    """
    Recipients see their own reply; the sender and admins see the replies of
    every recipient of the same broadcast
    """
    from notification_helpers import get_replies_by_notification

    notification_id = request.args.get('notification_id')
    if not notification_id:
        return jsonify({'error': 'notification_id is required'}), 400

    session_db = get_session()
    try:
        notification = session_db.query(Notification).filter_by(id=notification_id).first()
        if not notification:
            return jsonify({'error': 'Notification not found'}), 404

        if notification.user_id == current_user.id:
            replies = get_replies_by_notification(session_db, [notification_id], user_id=current_user.id)
            return jsonify({'success': True, 'replies': replies.get(notification_id, [])})

        if notification.sender_id != current_user.id and not is_admin_user():
            return jsonify({'error': 'Forbidden', 'message': 'You cannot view these replies'}), 403

        sibling_ids = [r[0] for r in session_db.query(Notification.id).filter(
            Notification.sender_id == notification.sender_id,
            Notification.title == notification.title,
            Notification.message == notification.message
        ).all()] if notification.sender_id else [notification_id]
        grouped = get_replies_by_notification(session_db, sibling_ids)
        replies = [reply for nid in sibling_ids for reply in grouped.get(nid, [])]
        return jsonify({'success': True, 'replies': replies, 'count': len(replies)})
    except Exception as e:
        logger.error(f"Error loading replies for notification {notification_id}: {e}")
        return jsonify({'error': 'Failed to fetch replies'}), 500
    finally:
        session_db.close()


@notification_bp.route('/reply', methods=['DELETE'])
@require_role()
@limiter.limit(RateLimitPresets.WRITE)
def delete_reply():
    data = get_json_body()
    notification_id = data.get('notification_id') or request.args.get('notification_id')
    if not notification_id:
        return jsonify({'error': 'notification_id is required'}), 400

    session_db = get_session()
    try:
        deleted = session_db.query(NotificationReply).filter_by(
            notification_id=notification_id, user_id=current_user.id
        ).delete(synchronize_session=False)
        if not deleted:
            return jsonify({'error': 'Reply not found'}), 404
        session_db.commit()
        return jsonify({'success': True, 'message': 'Reply deleted successfully'})
    except Exception as e:
        session_db.rollback()
        logger.error(f"Error deleting reply for notification {notification_id}: {e}")
        return jsonify({'error': 'Failed to delete reply'}), 500
    finally:
        session_db.close()

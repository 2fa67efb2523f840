"""
Pagination Helper Functions
Offset pagination for admin listings and cursor pagination for feeds
"""

import base64
from datetime import datetime
from flask import request
from sqlalchemy import or_, and_

MEDIUM_LIMIT = 50
MAX_OFFSET_LIMIT = 1000
MAX_CURSOR_LIMIT = 100


def parse_pagination_params(default_limit=MEDIUM_LIMIT, max_limit=MAX_OFFSET_LIMIT):
    """
    Read limit/offset from the query string

    Returns:
        tuple: (limit, offset) clamped to sane bounds
    """
    limit = request.args.get('limit', default_limit, type=int)
    offset = request.args.get('offset', 0, type=int)
    return min(max(limit, 1), max_limit), max(offset, 0)


def pagination_meta(total, limit, offset):
    return {
        'total': total,
        'limit': limit,
        'offset': offset,
        'hasMore': offset + limit < total,
    }


def wants_cursor():
    return bool(request.args.get('cursor')) or request.args.get('use_cursor', '').lower() == 'true'


def encode_cursor(timestamp, row_id):
    ts = timestamp.isoformat() if isinstance(timestamp, datetime) else str(timestamp)
    return base64.urlsafe_b64encode(f"{ts}|{row_id}".encode('utf-8')).decode('ascii').rstrip('=')


def decode_cursor(cursor):
    """
    Decode a cursor produced by encode_cursor

    Returns:
        tuple (datetime, id) or None when the cursor is malformed
    """
    if not cursor:
        return None
    try:
        padded = cursor + '=' * (-len(cursor) % 4)
        decoded = base64.urlsafe_b64decode(padded.encode('ascii')).decode('utf-8')
        ts, row_id = decoded.split('|', 1)
        return datetime.fromisoformat(ts), row_id
    except (ValueError, UnicodeDecodeError):
        return None


def apply_cursor(query, model, cursor, limit, timestamp_field='created_at'):
    """
    Order newest first and start after the cursor position.
    One extra row is fetched so the caller can tell whether more exist.
    """
    column = getattr(model, timestamp_field)
    parsed = decode_cursor(cursor)
    if parsed:
        ts, row_id = parsed
        query = query.filter(or_(
            column < ts,
            and_(column == ts, model.id < row_id)
        ))
    return query.order_by(column.desc(), model.id.desc()).limit(limit + 1)


def cursor_page(rows, limit, timestamp_field='created_at'):
    """
    Split the limit+1 rows returned by apply_cursor

    Returns:
        tuple: (rows, meta) where meta carries nextCursor/hasMore
    """
    has_more = len(rows) > limit
    rows = rows[:limit]
    next_cursor = None
    if has_more and rows:
        last = rows[-1]
        next_cursor = encode_cursor(getattr(last, timestamp_field), last.id)
    return rows, {'limit': limit, 'hasMore': has_more, 'nextCursor': next_cursor}


def parse_cursor_limit():
    limit = request.args.get('limit', MEDIUM_LIMIT, type=int)
    return min(max(limit, 1), MAX_CURSOR_LIMIT)

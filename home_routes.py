"""
System Routes - health check and cache status
"""
from flask import Blueprint, jsonify
from sqlalchemy import text
from datetime import datetime
import logging

from db_single import get_session
from auth_helpers import require_role
from cache_helpers import cache_status, ping_cache, backend_name

logger = logging.getLogger(__name__)

home_bp = Blueprint('home', __name__, url_prefix='/api')


@home_bp.route('/health', methods=['GET'])
def health():
    """Database and cache reachability"""
    checks = {'database': 'ok', 'cache': 'ok', 'cache_backend': backend_name()}
    healthy = True

    session_db = get_session()
    try:
        session_db.execute(text('SELECT 1'))
    except Exception as e:
        logger.error(f"Health check database failure: {e}")
        checks['database'] = 'unavailable'
        healthy = False
    finally:
        session_db.close()

    if not ping_cache():
        checks['cache'] = 'unavailable'

    body = {
        'status': 'healthy' if healthy else 'unhealthy',
        'checks': checks,
        'timestamp': datetime.utcnow().isoformat(),
    }
    return jsonify(body), 200 if healthy else 503


@home_bp.route('/cache/status', methods=['GET'])
@require_role('admin')
def cache_info():
    return jsonify({'success': True, 'cache': cache_status(), 'reachable': ping_cache()})

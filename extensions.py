"""
Flask extension instances shared by the app factory and the blueprints
"""

from flask import jsonify
from flask_login import LoginManager, current_user
from flask_wtf.csrf import CSRFProtect
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
import logging

logger = logging.getLogger(__name__)


def rate_limit_key():
    """Authenticated callers are limited per user, anonymous ones per address"""
    try:
        if current_user and current_user.is_authenticated:
            return f"user:{current_user.get_id()}"
    except Exception as e:
        logger.debug(f"rate_limit_key falling back to remote address: {e}")
    return f"ip:{get_remote_address()}"


class RateLimitPresets:
    """Per-endpoint limits, per key"""
    AUTH = "5 per minute"
    API = "100 per minute"
    UPLOAD = "30 per minute"
    READ = "200 per minute"
    WRITE = "50 per minute"


login_manager = LoginManager()
csrf = CSRFProtect()
limiter = Limiter(key_func=rate_limit_key, default_limits=[])


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({'error': 'Unauthorized', 'message': 'Authentication required'}), 401

# main.py
"""
School Management SaaS backend
JSON API for platform admins, school admins, teachers and students
"""

import os
import sys
import logging
from flask import Flask, jsonify
from flask_cors import CORS
from flask_wtf.csrf import CSRFError

# Ensure project root is on sys.path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

# --- local modules ---
from config import config as config_by_name
from db_single import get_session, init_database
from models import User
from extensions import login_manager, csrf, limiter
from cli_commands import register_cli_commands


def create_app(config_name: str = 'default') -> Flask:
    """Create the Flask application for the named configuration"""
    app_config = config_by_name.get(config_name, config_by_name['default'])()

    app = Flask(__name__)
    app.config.from_object(app_config)
    app.config['APP_CONFIG'] = app_config

    # Logging
    logging.basicConfig(
        level=logging.DEBUG if app.config.get('DEBUG') else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    logger = logging.getLogger(__name__)

    # DB init
    init_database(app_config)
    try:
        from init_db import run_on_startup
        if not run_on_startup(app_config, verbose=not app.config.get('TESTING')):
            logger.warning("Database initialization had issues; continuing with existing state")
    except Exception as e:
        logger.error(f"Could not run database initialization: {e}")

    # Flask-Login
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id: str):
        s = get_session()
        try:
            user = s.get(User, user_id)
            if user and user.is_active:
                return user
            return None
        finally:
            s.close()

    # CSRF, rate limits, CORS
    csrf.init_app(app)
    limiter.init_app(app)
    CORS(
        app,
        resources={r"/api/*": {"origins": app.config.get('CORS_ORIGINS', '*').split(',')}},
        supports_credentials=True,
    )

    # CLI
    register_cli_commands(app)

    # Blueprints
    try:
        from auth_routes import auth_bp
        app.register_blueprint(auth_bp)
        logger.info("✅ Auth blueprint registered")
    except Exception as e:
        logger.error(f"❌ Auth blueprint failed: {e}")

    try:
        from admin_routes import create_admin_blueprint
        app.register_blueprint(create_admin_blueprint())
        logger.info("✅ Admin blueprint registered")
    except Exception as e:
        logger.error(f"❌ Admin blueprint failed: {e}")

    try:
        from school_admin_routes import school_admin_bp
        app.register_blueprint(school_admin_bp)
        logger.info("✅ School admin blueprint registered")
    except Exception as e:
        logger.error(f"❌ School admin blueprint failed: {e}")

    try:
        from teacher_routes import teacher_bp
        app.register_blueprint(teacher_bp)
        logger.info("✅ Teacher blueprint registered")
    except Exception as e:
        logger.error(f"❌ Teacher blueprint failed: {e}")

    try:
        from student_routes import student_bp
        app.register_blueprint(student_bp)
        logger.info("✅ Student blueprint registered")
    except Exception as e:
        logger.error(f"❌ Student blueprint failed: {e}")

    try:
        from notification_routes import notification_bp
        app.register_blueprint(notification_bp)
        logger.info("✅ Notification blueprint registered")
    except Exception as e:
        logger.error(f"❌ Notification blueprint failed: {e}")

    try:
        from home_routes import home_bp
        app.register_blueprint(home_bp)
        logger.info("✅ System blueprint registered")
    except Exception as e:
        logger.error(f"❌ System blueprint failed: {e}")

    @app.errorhandler(CSRFError)
    def csrf_error(e):
        return jsonify({'error': 'CSRF token validation failed', 'message': e.description}), 403

    @app.errorhandler(400)
    def bad_request(e):
        return jsonify({'error': 'Bad request', 'message': getattr(e, 'description', str(e))}), 400

    @app.errorhandler(404)
    def not_found(_):
        return jsonify({'error': 'Not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(_):
        return jsonify({'error': 'Method not allowed'}), 405

    @app.errorhandler(429)
    def too_many_requests(e):
        return jsonify({
            'error': 'Too many requests',
            'message': f"Rate limit exceeded: {getattr(e, 'description', '')}",
        }), 429

    @app.errorhandler(500)
    def internal_error(e):
        logger.error(f"Unhandled server error: {e}")
        return jsonify({'error': 'Internal server error'}), 500

    return app


if __name__ == "__main__":
    app = create_app(os.environ.get('FLASK_CONFIG', 'development'))
    # use_reloader=False prevents server restart which kills email threads
    app.run(debug=True, host="0.0.0.0", port=5000, use_reloader=False)

import os

from flask import Flask, jsonify, request
from flask_cors import CORS
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException, NotFound

from src.infrastructure.config import settings
from src.infrastructure.database import init_app as init_db, ensure_indexes, db
from src.domain.errors import BaseAppException
from qz_utils.logger_utils import logger

# Import Blueprints
from src.api.routes_auth import auth_bp, login_manager
from src.api.routes_quizzes import quizzes_bp
from src.api.routes_questions import questions_bp
from src.api.routes_attempts import attempts_bp
from src.api.routes_admin import admin_bp, users_bp


def create_app(config_overrides=None):
    """Application factory for Flask."""
    app = Flask(__name__)

    # --- Core Configuration ---
    app.config.from_object(settings)
    app.config['JSON_AS_ASCII'] = False
    if config_overrides:
        app.config.update(config_overrides)

    # --- Security Configuration ---
    app.config['SESSION_COOKIE_SECURE'] = settings.FLASK_ENV == 'production'
    app.config['SESSION_COOKIE_HTTPONLY'] = True
    app.config['SESSION_COOKIE_SAMESITE'] = settings.SESSION_COOKIE_SAMESITE
    CORS(app, resources={r"/api/*": {"origins": settings.cors_origins}}, supports_credentials=True)

    # --- Initialize Extensions ---
    init_db(app)
    login_manager.init_app(app)

    # --- Blueprints Registration ---
    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(quizzes_bp, url_prefix='/api/quizzes')
    app.register_blueprint(questions_bp, url_prefix='/api/questions')
    app.register_blueprint(attempts_bp, url_prefix='/api/attempts')
    app.register_blueprint(admin_bp, url_prefix='/api/admin')
    app.register_blueprint(users_bp, url_prefix='/api/users')

    # --- Request Hooks ---
    @app.after_request
    def add_security_headers(response):
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'SAMEORIGIN'
        response.headers['X-XSS-Protection'] = '1; mode=block'
        return response

    # --- Health Checks ---
    @app.route('/health')
    def health_check():
        return jsonify({"status": "healthy"}), 200

    @app.route('/health/detailed')
    def detailed_health_check():
        health_status = {"status": "healthy", "components": {}}
        try:
            db.command('ping')
            health_status["components"]["mongodb"] = {"status": "healthy"}
        except Exception as e:
            health_status["components"]["mongodb"] = {"status": "unhealthy", "error": str(e)}
            health_status["status"] = "unhealthy"
        return jsonify(health_status), 503 if health_status["status"] == "unhealthy" else 200

    # --- Error Handling ---
    @app.errorhandler(BaseAppException)
    def handle_app_exception(error):
        if error.status_code >= 500:
            logger.error(f"{error.kind} for path {request.path}: {error.message}", exc_info=True)
        else:
            logger.warning(f"{error.kind} for path {request.path}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(ValidationError)
    def handle_validation_error(error):
        logger.warning(f"Invalid payload for path {request.path}: {error.error_count()} error(s)")
        return jsonify({
            "error": "ValidationError",
            "message": "Invalid request payload",
            "details": error.errors(include_url=False, include_context=False, include_input=False),
        }), 400

    @app.errorhandler(NotFound)
    def handle_not_found(error):
        logger.warning(f"Not Found error for path: {request.path}")
        return jsonify({"error": "NotFound", "message": "Resource not found"}), 404

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        return jsonify({"error": error.name.replace(" ", ""), "message": error.description}), error.code

    @app.errorhandler(Exception)
    def handle_exception(error):
        logger.error(f"Unhandled exception for path {request.path}: {error}", exc_info=True)
        message = str(error) if app.config.get('DEBUG') else "Internal Server Error"
        return jsonify({"error": "ServerError", "message": message}), 500

    if not app.config.get('TESTING') and settings.FLASK_ENV != 'testing':
        with app.app_context():
            try:
                ensure_indexes(db)
            except Exception as e:
                logger.error(f"Could not ensure MongoDB indexes: {e}", exc_info=True)

    logger.info(f"Flask App created successfully in {settings.FLASK_ENV} mode.")
    return app


if __name__ == '__main__':
    app = create_app()
    app.run(host='0.0.0.0', port=int(os.environ.get("PORT", 5000)))

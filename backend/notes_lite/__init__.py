import logging
from typing import Optional

from flask import Flask, request
from flask_cors import CORS

from .config import Config
from .services.container import Services, create_services

logger = logging.getLogger(__name__)


def create_app(testing: bool = False, services: Optional[Services] = None):
    app = Flask(__name__)
    app.config["TESTING"] = testing
    app.config["MAX_CONTENT_LENGTH"] = Config.MAX_CONTENT_LENGTH

    if not testing:
        logging.basicConfig(
            level=Config.LOG_LEVEL,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

    # In development, allow all origins for easier testing
    if Config.FLASK_ENV == "development" or testing:
        CORS(app)
    else:
        CORS(app, origins=Config.allowed_origins())

    app.extensions["services"] = services or create_services()

    from .routes import bp as api_bp, register_error_handlers
    app.register_blueprint(api_bp, url_prefix="/api")
    register_error_handlers(app)

    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}

    @app.after_request
    def log_request(response):
        logger.info("%s %s %s", request.method, request.path, response.status_code)
        return response

    return app

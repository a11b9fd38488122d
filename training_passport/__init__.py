from __future__ import annotations

from dotenv import load_dotenv
from flask import Flask
from flask_cors import CORS

from training_passport.config import get_config
from training_passport.db import init_mongo
from training_passport.middleware import (
    init_error_handlers,
    init_rate_limiting,
    init_request_context,
    init_request_logging,
    init_security_headers,
)
from training_passport.routes.assignments import assignments_bp
from training_passport.routes.auth import auth_bp
from training_passport.routes.core import core_bp
from training_passport.routes.jobs import jobs_bp
from training_passport.routes.reports import reports_bp
from training_passport.routes.trainer import trainer_bp
from training_passport.routes.trainings import trainings_bp
from training_passport.routes.users import users_bp
from training_passport.utils.logging import setup_logging


def create_app() -> Flask:
    load_dotenv()

    cfg = get_config()
    setup_logging(cfg.LOG_LEVEL)

    app = Flask(__name__)
    app.config["CFG"] = cfg

    CORS(
        app,
        origins=cfg.CORS_ORIGINS,
        supports_credentials=cfg.CORS_ALLOW_CREDENTIALS,
        allow_headers=["Content-Type", "Authorization", "X-Request-ID", "X-Internal-Token"],
        expose_headers=["X-Request-ID"],
        methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        max_age=3600,
    )

    init_request_context(app)
    init_security_headers(app)
    init_rate_limiting(app)
    init_request_logging(app)
    init_error_handlers(app)

    init_mongo(app)

    app.register_blueprint(core_bp)
    app.register_blueprint(auth_bp, url_prefix="/api/v1/auth")
    app.register_blueprint(users_bp, url_prefix="/api/v1/users")
    app.register_blueprint(trainings_bp, url_prefix="/api/v1/trainings")
    app.register_blueprint(assignments_bp, url_prefix="/api/v1/assignments")
    app.register_blueprint(trainer_bp, url_prefix="/api/v1/trainer")
    app.register_blueprint(reports_bp, url_prefix="/api/v1/reports")
    app.register_blueprint(jobs_bp, url_prefix="/api/v1/jobs")

    return app

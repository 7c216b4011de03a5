import os

import click
from flask import Flask, g, jsonify, request
from sqlalchemy import text
from werkzeug.exceptions import HTTPException

from spaceshare.extensions import cors, db, migrate
from spaceshare.integrations.payments.factory import payment_health
from spaceshare.models import User
from spaceshare.segments.segment_admin_coins import admin_coins_bp
from spaceshare.segments.segment_admin_moderation import admin_moderation_bp
from spaceshare.segments.segment_auth import auth_bp
from spaceshare.segments.segment_coins import coins_bp
from spaceshare.segments.segment_listings import listings_bp
from spaceshare.segments.segment_payment_webhooks import webhooks_bp
from spaceshare.segments.segment_search import search_bp
from spaceshare.utils.env import env_bool, env_int, env_str
from spaceshare.utils.observability import configure_logging, init_sentry, install_request_observers


def _is_prod(env: str) -> bool:
    return env in ("prod", "production")


def _database_url(env: str, instance_dir: str) -> str:
    database_url = os.getenv("SQLALCHEMY_DATABASE_URI") or os.getenv("DATABASE_URL")
    if not database_url:
        if _is_prod(env):
            raise RuntimeError("DATABASE_URL (or SQLALCHEMY_DATABASE_URI) must be set in production")
        path = os.path.join(instance_dir, "spaceshare.db").replace(os.sep, "/")
        return f"sqlite:///{path}"
    if database_url.startswith("postgres://"):
        database_url = "postgresql://" + database_url[len("postgres://"):]
    return database_url


def _engine_options(app, database_url: str) -> dict:
    options = {
        "pool_pre_ping": True,
        "pool_recycle": env_int("DB_POOL_RECYCLE_SECONDS", 1800, minimum=60, maximum=86400),
    }
    if not database_url.startswith("sqlite://"):
        options.update(
            {
                "pool_size": env_int("DB_POOL_SIZE", 10, minimum=1, maximum=200),
                "max_overflow": env_int("DB_MAX_OVERFLOW", 20, minimum=0, maximum=500),
                "pool_timeout": env_int("DB_POOL_TIMEOUT_SECONDS", 30, minimum=1, maximum=300),
            }
        )
        app.logger.info(
            "db_pooling_enabled pool_size=%s max_overflow=%s pool_timeout=%s pool_recycle=%s",
            options["pool_size"],
            options["max_overflow"],
            options["pool_timeout"],
            options["pool_recycle"],
        )
    return options


def _error_payload(error: str, message: str, status: int) -> dict:
    payload = {"ok": False, "error": error, "message": message, "status": status}
    rid = (getattr(g, "request_id", "") or "").strip()
    if rid:
        payload["trace_id"] = rid
    return payload


def create_app():
    app = Flask(__name__)
    configure_logging(app)
    init_sentry(app)

    env = env_str("SPACESHARE_ENV", "dev").lower()
    if _is_prod(env):
        secret = env_str("SECRET_KEY")
        if len(secret) < 16:
            raise RuntimeError("SECRET_KEY must be set and at least 16 chars in production")

    app.config["SECRET_KEY"] = env_str("SECRET_KEY", "dev-secret")
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["JSON_AS_ASCII"] = False

    instance_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "instance"))
    os.makedirs(instance_dir, exist_ok=True)
    database_url = _database_url(env, instance_dir)
    app.config["SQLALCHEMY_DATABASE_URI"] = database_url
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = _engine_options(app, database_url)

    cors_origins = [o.strip() for o in env_str("CORS_ORIGINS").split(",") if o.strip()]
    if not cors_origins and not _is_prod(env):
        cors_origins = ["*"]
    cors.init_app(app, resources={r"/api/*": {"origins": cors_origins}})

    db.init_app(app)
    migrate.init_app(app, db)
    install_request_observers(app)

    if env_bool("SEPAY_WEBHOOK_QUEUE", False):
        from spaceshare.celery_app import create_celery_app

        app.extensions["celery"] = create_celery_app(app)

    @app.errorhandler(HTTPException)
    def _api_http_exception(error: HTTPException):
        if not request.path.startswith("/api/"):
            return error
        status = int(error.code or 500)
        return jsonify(_error_payload(error.name, error.description or error.name, status)), status

    @app.errorhandler(Exception)
    def _api_unhandled_exception(error: Exception):
        db.session.rollback()
        app.logger.exception("unhandled_exception path=%s", request.path)
        return jsonify(_error_payload("InternalServerError", "Internal server error", 500)), 500

    app.register_blueprint(auth_bp)
    app.register_blueprint(search_bp)
    app.register_blueprint(listings_bp)
    app.register_blueprint(coins_bp)
    app.register_blueprint(webhooks_bp)
    app.register_blueprint(admin_coins_bp)
    app.register_blueprint(admin_moderation_bp)

    @app.get("/api/health")
    def health():
        db_state = "ok"
        try:
            with db.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            app.logger.warning("health_db_check_failed err=%s", e)
            db_state = "fail"
        return jsonify(
            {
                "ok": True,
                "service": "spaceshare-backend",
                "env": env,
                "db": db_state,
                "payments": payment_health(),
            }
        )

    @app.before_request
    def _reset_db_session():
        g.pop("current_user", None)
        db.session.rollback()

    @app.teardown_request
    def _cleanup_db_session(exc):
        try:
            if exc is not None:
                db.session.rollback()
        finally:
            db.session.remove()

    @app.cli.command("bootstrap-admin")
    def bootstrap_admin():
        email = env_str("ADMIN_EMAIL").lower()
        password = env_str("ADMIN_PASSWORD")
        if not email or not password:
            raise click.ClickException("ADMIN_EMAIL and ADMIN_PASSWORD must be set.")
        user = User.query.filter_by(email=email).first()
        if user is None:
            user = User(name=email.split("@")[0], email=email)
            db.session.add(user)
        user.role = "admin"
        user.set_password(password)
        db.session.commit()
        click.echo(f"admin_bootstrap_ok {user.email}")

    @app.cli.command("reconcile-topups")
    @click.option("--limit", default=50, show_default=True)
    def reconcile_topups(limit):
        from spaceshare.services.topup_service import reconcile_pending_orders

        click.echo(reconcile_pending_orders(limit=limit))

    return app

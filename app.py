import logging

import click
from flask import Flask, request, g, jsonify
from flask_migrate import Migrate
from sqlalchemy.exc import SQLAlchemyError

from config import Config
from models import db
from models.user import ROLES, User
from routes import ALL_BLUEPRINTS
from security.csrf import require_csrf
from utils.auth_context import load_current_user
from utils.digest import send_daily_digest
from utils.fanout import NotificationFanout


CSRF_EXEMPT_PATHS = {
    "/auth/login",
    "/auth/register",
    "/api/security/verify",
    "/health",
}


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)
    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    for bp in ALL_BLUEPRINTS:
        app.register_blueprint(bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Delivery clients are built once and shared by all requests and threads
    app.extensions["fanout"] = NotificationFanout.from_config(app.config)

    @app.before_request
    def _load_user():
        load_current_user()

    @app.before_request
    def _csrf_protect():
        # Only protect state-changing requests
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            if request.path in CSRF_EXEMPT_PATHS:
                return None

            # Only enforce CSRF if user is already authenticated (cookie session)
            if getattr(g, "user", None) is not None:
                failure = require_csrf()
                if failure:
                    return failure

    @app.errorhandler(SQLAlchemyError)
    def _database_error(exc):
        # no gate decision or write survives a store failure
        db.session.rollback()
        app.logger.exception("[db] %s %s failed", request.method, request.path)
        return jsonify(error="Server error"), 500

    @app.errorhandler(ValueError)
    def _validation_error(exc):
        return jsonify(error=str(exc)), 400

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app

#-------------------------

def register_cli(app):
    @app.cli.command("make-admin")
    @click.argument("email")
    def make_admin(email):
        """Promote a user to ADMIN by email (bootstrap)."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            click.echo("User not found")
            return

        user.role = "ADMIN"
        db.session.commit()
        click.echo(f"{user.email} promoted to ADMIN")

    @app.cli.command("set-role")
    @click.argument("email")
    @click.argument("role", type=click.Choice(ROLES, case_sensitive=False))
    def set_role(email, role):
        """Change a user's role."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            click.echo("User not found")
            return

        user.role = role.upper()
        db.session.commit()
        click.echo(f"{user.email} is now {user.role}")

    @app.cli.command("send-digest")
    def send_digest():
        """Send the daily notification digest (run once a day from cron)."""
        result = send_daily_digest(app.extensions["fanout"].mailer)
        click.echo(f"Digest sent to {result.sent}/{result.total} recipient(s)")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)

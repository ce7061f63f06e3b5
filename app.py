import logging
import signal
import threading

import click
from flask import Flask, jsonify

from config import Config
from routes import health_bp, slot_bp, booking_bp, admin_bp, notification_bp

from models import db
from flask_migrate import Migrate
from services.clock import SystemClock
from services.errors import BookingError
from services.notifier import build_notifier
from services.reminders import ReminderScheduler
from utils.seed import seed_roles
from utils.auth_context import load_current_user


def create_app(config_object=Config, clock=None, notifier=None):
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(slot_bp)
    app.register_blueprint(booking_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(notification_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Core collaborators, shared by routes and the scheduler
    app.extensions["clock"] = clock or SystemClock()
    app.extensions["notifier"] = notifier or build_notifier(app.config)

    # Seed default roles at startup (safe & idempotent)
    if app.config.get("SEED_ON_STARTUP", True):
        with app.app_context():
            seed_roles()

    @app.before_request
    def _load_user():
        load_current_user()

    @app.errorhandler(BookingError)
    def _booking_error(exc):
        return jsonify(exc.to_dict()), exc.status_code

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp


    register_cli(app)


    return app


def build_scheduler(app):
    return ReminderScheduler.from_config(
        app.config,
        clock=app.extensions["clock"],
        notifier=app.extensions["notifier"],
    )

#-------------------------
from models.user import User, Role

def register_cli(app):
    @app.cli.command("set-role")
    @click.argument("email")
    @click.argument("role")
    def set_role(email, role):
        """Grant ROLE (STUDENT, FACULTY, ADMIN) to a user by email (bootstrap)."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            print("User not found")
            return

        role_name = role.strip().upper()
        role_row = Role.query.filter_by(name=role_name).first()
        if not role_row:
            role_row = Role(name=role_name)
            db.session.add(role_row)
            db.session.commit()

        if role_row not in user.roles:
            user.roles.append(role_row)
            db.session.commit()

        print(f"{user.email} granted {role_name}")

    @app.cli.command("scan-reminders")
    def scan_reminders():
        """Run both reminder scans once."""
        result = build_scheduler(app).tick()
        print(f"reminders fired: {result['reminders']}, load suggestions: {result['load_suggestions']}")

    @app.cli.command("run-scheduler")
    def run_scheduler():
        """Run the reminder scheduler until interrupted."""
        scheduler = build_scheduler(app)
        stop = threading.Event()

        def _stop(signum, frame):
            stop.set()

        signal.signal(signal.SIGINT, _stop)
        signal.signal(signal.SIGTERM, _stop)

        def _in_context(tick):
            with app.app_context():
                tick()

        scheduler.run_forever(stop, on_tick=_in_context)

#-------------------------




if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)

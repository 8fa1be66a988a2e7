import logging

from flask import jsonify
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from app import db, limiter, login_manager
from app.forms.auth import LoginForm, RegistrationForm
from app.models import User
from app.routes.auth import bp
from app.services.errors import ConflictError, ValidationError
from app.utils.cache_utils import invalidate_rankings

logger = logging.getLogger(__name__)


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))


@bp.route("/csrf-token")
def csrf_token():
    """Token to send back in the X-CSRFToken header on writes"""
    return jsonify({"csrf_token": generate_csrf()})


@bp.route("/register", methods=["POST"])
@limiter.limit("5 per hour")
def register():
    form = RegistrationForm()
    if not form.validate():
        raise ValidationError("Invalid registration data", form.error_details())

    username = form.username.data.strip()
    email = User.normalize_email(form.email.data)

    existing = User.query.filter(
        or_(func.lower(User.username) == username.lower(), User.email == email)
    ).first()
    if existing:
        raise ConflictError()

    user = User(username=username, email=email)
    user.set_password(form.password.data)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        # Lost a race with a concurrent registration for the same identity
        db.session.rollback()
        raise ConflictError()

    invalidate_rankings()
    logger.info(f"Registered user {user.username} (id {user.id})")
    login_user(user)
    return jsonify({"user": user.to_dict()}), 201


@bp.route("/login", methods=["POST"])
@limiter.limit("10 per minute")
def login():
    form = LoginForm()
    if not form.validate():
        raise ValidationError("Email and password are required", form.error_details())

    user = User.query.filter_by(email=User.normalize_email(form.email.data)).first()
    if user is None or not user.check_password(form.password.data):
        logger.info("Failed login attempt")
        return jsonify({"error": "Invalid email or password"}), 401

    login_user(user, remember=form.remember_me.data)
    user.update_last_login()
    return jsonify({"user": user.to_dict()})


@bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify({"success": True})


@bp.route("/me")
@login_required
def me():
    return jsonify({"user": current_user.to_dict()})

# reviewdesk/blueprints/auth/routes.py
from flask import jsonify, current_app
from flask_login import login_user, logout_user, login_required, current_user

from ...extensions import db, csrf
from ...models.user import User
from . import auth_bp
from .forms import LoginForm

csrf.exempt(auth_bp)


@auth_bp.post("/login")
def login():
    form = LoginForm()
    if not form.validate():
        return jsonify({"error": "validation_error", "fields": form.errors}), 400

    email = form.email.data.strip().lower()
    user = User.query.filter_by(email=email).first()
    if not user or not user.check_password(form.password.data):
        current_app.logger.info("Failed login for %s", email)
        return jsonify({"error": "invalid_credentials", "message": "Invalid email or password."}), 401

    if user.is_suspended:
        return jsonify({"error": "suspended", "message": "Your account is suspended. Contact support."}), 403

    login_user(user, remember=bool(form.remember.data))
    user.mark_login()
    db.session.commit()
    return jsonify({"user": user.to_dict()})


@auth_bp.post("/logout")
@login_required
def logout():
    logout_user()
    return jsonify({"ok": True})


@auth_bp.get("/me")
@login_required
def me():
    return jsonify({"user": current_user.to_dict()})

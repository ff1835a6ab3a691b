# reviewdesk/security.py
from functools import wraps

from flask import abort
from flask_login import current_user

from .workflow.guard import ADMIN, CLIENT


def roles_required(*roles):
    """403 unless the logged-in user has one of ``roles``. Use under @login_required."""
    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            if not current_user.is_authenticated:
                abort(401)
            if getattr(current_user, "role", None) not in roles:
                abort(403)
            return view(*args, **kwargs)
        return wrapped
    return decorator


def actor_role(user=None) -> str:
    """Workflow role for a user: agency staff act as admin, everyone else as client."""
    user = user or current_user
    return ADMIN if getattr(user, "role", None) == ADMIN else CLIENT


def can_view_project(project, user=None) -> bool:
    user = user or current_user
    if not getattr(user, "is_authenticated", False) or project is None:
        return False
    return actor_role(user) == ADMIN or project.client_id == user.id

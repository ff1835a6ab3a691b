# reviewdesk/blueprints/approvals/routes.py
from flask import request, jsonify, abort
from flask_login import login_required, current_user

from . import approvals_bp
from ...extensions import db
from ...models.project import Project
from ...security import actor_role, can_view_project
from ...services.store import DeliverableStore
from ...workflow import guard
from ...workflow.inbox import build_inbox


def _summary(d):
    data = d.to_dict(include_files=False)
    data["project_name"] = d.project.name if d.project else None
    data["available_actions"] = guard.available_actions(actor_role(), d.status)
    return data


@approvals_bp.get("")
@login_required
def inbox():
    """Everything across the caller's projects that is waiting on them."""
    project_id = request.args.get("project_id", type=int)
    if project_id is not None:
        project = db.session.get(Project, project_id)
        if project is None:
            abort(404)
        if not can_view_project(project):
            abort(403)

    role = actor_role()
    client_id = None if role == guard.ADMIN else current_user.id
    listing = DeliverableStore().list(client_id=client_id)
    return jsonify(build_inbox(listing, role, project_id=project_id).to_dict(serialize=_summary))

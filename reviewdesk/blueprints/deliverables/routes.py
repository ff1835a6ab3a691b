# reviewdesk/blueprints/deliverables/routes.py
from flask import request, jsonify, abort, current_app
from flask_login import login_required, current_user

from . import deliverables_bp
from .forms import DeliverableForm, DeliverableUpdateForm, file_payloads, form_data
from ...extensions import db, csrf
from ...models.deliverable import STATUSES, TYPES
from ...models.project import Project
from ...security import roles_required, actor_role, can_view_project
from ...services.notifications import NotificationRelay, Outcome
from ...services.store import DeliverableStore
from ...workflow import guard
from ...workflow.engine import WorkflowEngine, retrying
from ...workflow.errors import WorkflowError, ValidationError
from ...workflow.inbox import status_counts

csrf.exempt(deliverables_bp)

relay = NotificationRelay()


# -----------------
# Helpers
# -----------------

def _store() -> DeliverableStore:
    return DeliverableStore()


def _engine() -> WorkflowEngine:
    return WorkflowEngine(_store())


def _payload() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("body", "Request body must be a JSON object.")
    return data


def _load_visible(deliverable_id):
    d = _store().load(deliverable_id)
    if not can_view_project(d.project):
        abort(403)
    return d


def _run(operation, deliverable_id, **kwargs):
    """Run one workflow operation for the current user and relay the outcome."""
    retries = current_app.config.get("WORKFLOW_CONFLICT_RETRIES", 1)
    try:
        _load_visible(deliverable_id)
        result = retrying(operation, deliverable_id, actor_role(), retries=retries,
                          actor_id=current_user.id, **kwargs)
    except WorkflowError as e:
        relay.notify(current_user.get_id(), Outcome.failure(e))
        raise
    outcome = Outcome.success(result)
    relay.notify(current_user.get_id(), outcome)
    return result, outcome


def _query_filters():
    project_id = request.args.get("project_id", type=int)
    status = (request.args.get("status") or "").strip() or None
    dtype = (request.args.get("type") or "").strip() or None
    if status and status not in STATUSES:
        raise ValidationError("status", f"Unknown status '{status}'.")
    if dtype and dtype not in TYPES:
        raise ValidationError("type", f"Unknown type '{dtype}'.")
    if project_id is not None:
        project = db.session.get(Project, project_id)
        if project is None:
            abort(404)
        if not can_view_project(project):
            abort(403)
    return project_id, status, dtype


def _visible_listing(project_id=None, status=None, dtype=None):
    client_id = None if actor_role() == guard.ADMIN else current_user.id
    return _store().list(project_id=project_id, status=status, type=dtype, client_id=client_id)


def _ts(dt):
    return dt.isoformat() if dt else None


def _detail(d):
    data = d.to_dict()
    data["available_actions"] = guard.available_actions(actor_role(), d.status)
    return data


# -----------------
# Listing / stats
# -----------------

@deliverables_bp.get("")
@login_required
def index():
    project_id, status, dtype = _query_filters()
    items = _visible_listing(project_id, status, dtype)
    return jsonify({"deliverables": [d.to_dict() for d in items], "count": len(items)})


@deliverables_bp.get("/stats")
@login_required
def stats():
    project_id, _, _ = _query_filters()
    return jsonify(status_counts(_visible_listing(project_id)))


# -----------------
# Create / edit / delete (administrative, outside the workflow)
# -----------------

@deliverables_bp.post("")
@login_required
@roles_required("admin")
def create():
    payload = _payload()
    form = DeliverableForm(formdata=form_data(payload))
    if not form.validate():
        return jsonify({"error": "validation_error", "fields": form.errors}), 400

    project = db.session.get(Project, form.project_id.data)
    if project is None:
        abort(404)

    d = _store().create(
        project_id=project.id,
        title=form.title.data.strip(),
        description=(form.description.data or "").strip() or None,
        type=form.type.data or "other",
        created_by=current_user.id,
        due_date=form.due_date.data,
        files=file_payloads(payload, "files"),
    )
    return jsonify(_detail(d)), 201


@deliverables_bp.get("/<int:deliverable_id>")
@login_required
def detail(deliverable_id):
    return jsonify(_detail(_load_visible(deliverable_id)))


@deliverables_bp.patch("/<int:deliverable_id>")
@login_required
@roles_required("admin")
def update(deliverable_id):
    d = _load_visible(deliverable_id)
    if guard.is_terminal(d.status):
        return jsonify({"error": "locked", "message": "Delivered deliverables can't be edited."}), 409

    payload = _payload()
    form = DeliverableUpdateForm(formdata=form_data(payload))
    if not form.validate():
        return jsonify({"error": "validation_error", "fields": form.errors}), 400

    changes = {k: getattr(form, k).data for k in ("title", "description", "type", "due_date") if k in payload}
    if "title" in changes:
        changes["title"] = (changes["title"] or "").strip()
        if not changes["title"]:
            raise ValidationError("title", "Title can't be blank.")

    d = _store().update_details(d, files=file_payloads(payload, "files"), **changes)
    return jsonify(_detail(d))


@deliverables_bp.delete("/<int:deliverable_id>")
@login_required
@roles_required("admin")
def delete(deliverable_id):
    d = _load_visible(deliverable_id)
    if guard.is_terminal(d.status) and not current_app.config.get("ALLOW_DELETE_DELIVERED"):
        return jsonify({"error": "locked", "message": "Delivered deliverables can't be deleted."}), 409
    _store().delete(d)
    return jsonify({"ok": True, "id": deliverable_id})


@deliverables_bp.get("/<int:deliverable_id>/events")
@login_required
def events(deliverable_id):
    d = _load_visible(deliverable_id)
    return jsonify({"events": [e.to_dict() for e in d.events]})


# -----------------
# Workflow transitions
# -----------------

@deliverables_bp.post("/<int:deliverable_id>/submit")
@login_required
def submit(deliverable_id):
    result, outcome = _run(_engine().submit_for_review, deliverable_id,
                           message=_payload().get("message"))
    d = result.deliverable
    return jsonify({
        "id": d.id,
        "status": d.status,
        "version": d.version,
        "submitted_at": _ts(d.submitted_at),
        "message": outcome.message,
    })


@deliverables_bp.post("/<int:deliverable_id>/approve")
@login_required
def approve(deliverable_id):
    result, outcome = _run(_engine().approve, deliverable_id,
                           message=_payload().get("message"))
    d = result.deliverable
    return jsonify({
        "id": d.id,
        "status": d.status,
        "approved_at": _ts(d.approved_at),
        "message": outcome.message,
    })


@deliverables_bp.post("/<int:deliverable_id>/request-changes")
@login_required
def request_changes(deliverable_id):
    result, outcome = _run(_engine().request_changes, deliverable_id,
                           feedback=_payload().get("feedback"))
    d = result.deliverable
    return jsonify({"id": d.id, "status": d.status, "message": outcome.message})


@deliverables_bp.post("/<int:deliverable_id>/deliver")
@login_required
def deliver(deliverable_id):
    payload = _payload()
    notes = payload.get("deliveryNotes", payload.get("delivery_notes"))
    key = "finalFiles" if "finalFiles" in payload else "final_files"
    result, outcome = _run(_engine().deliver, deliverable_id,
                           delivery_notes=notes,
                           final_files=file_payloads(payload, key))
    d = result.deliverable
    return jsonify({
        "id": d.id,
        "status": d.status,
        "delivered_at": _ts(d.delivered_at),
        "files": [f.to_dict() for f in d.files],
        "message": outcome.message,
    })

# reviewdesk/services/notifications.py
"""Surfaces workflow outcomes to people.

Everything here is best effort: a committed transition stays committed even
if flashing or mailing fails.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from flask import current_app, flash, url_for
from flask_babel import gettext as _

from ..models.deliverable import PENDING_REVIEW, NEEDS_CHANGES, APPROVED, DELIVERED
from ..models.user import User
from ..workflow import errors
from ..workflow.engine import TransitionResult
from .email_service import send_email

log = logging.getLogger(__name__)

STATUS_LABELS = {
    "draft": "Draft",
    PENDING_REVIEW: "Pending Review",
    NEEDS_CHANGES: "Needs Changes",
    APPROVED: "Approved",
    DELIVERED: "Delivered",
}


@dataclass
class Outcome:
    ok: bool
    message: str
    category: str = "info"
    result: Optional[TransitionResult] = None
    error: Optional[errors.WorkflowError] = None

    @classmethod
    def success(cls, result: TransitionResult) -> "Outcome":
        return cls(ok=True, message=_success_message(result), category="success", result=result)

    @classmethod
    def failure(cls, error: errors.WorkflowError) -> "Outcome":
        if isinstance(error, errors.NotFound):
            category = "danger"
        elif isinstance(error, errors.ConcurrentModification):
            category = "info"
        else:
            category = "warning"
        return cls(ok=False, message=error.message, category=category, error=error)


def _success_message(result: TransitionResult) -> str:
    d = result.deliverable
    if result.action in ("submit", "resubmit"):
        if result.from_status == NEEDS_CHANGES:
            return _("Resubmitted as version %(version)s.", version=d.version)
        return _("Submitted for review.")
    if result.action == "approve":
        return _("Deliverable approved.")
    if result.action == "request_changes":
        return _("Changes requested.")
    if result.action == "deliver":
        return _("Deliverable delivered.")
    return _("Deliverable updated.")


def _safe_flash(msg: str, category: str = "info"):
    """Only flash when there's a request context that can store it."""
    try:
        flash(msg, category)
    except Exception:
        pass


class NotificationRelay:

    def notify(self, actor_session_id, outcome: Outcome):
        if outcome.ok:
            log.info("notify %s: %s", actor_session_id, outcome.message)
        else:
            log.info("notify %s: [%s] %s", actor_session_id, outcome.error.code, outcome.message)
        _safe_flash(outcome.message, outcome.category)

        if outcome.ok and current_app.config.get("WORKFLOW_NOTIFY_EMAIL"):
            try:
                self.email_counterpart(outcome.result)
            except Exception as e:
                log.warning("workflow email failed for deliverable %s: %s",
                            outcome.result.deliverable.id, e)

    def recipients_for(self, result: TransitionResult) -> list[User]:
        """Who has to act next (or should hear about it)."""
        d = result.deliverable
        if d.status in (PENDING_REVIEW, DELIVERED):
            client = d.project.client if d.project else None
            return [client] if client else []
        if d.status in (APPROVED, NEEDS_CHANGES):
            configured = current_app.config.get("ADMIN_EMAILS") or []
            if configured:
                return list(User.query.filter(User.email.in_(configured)).all())
            return list(User.query.filter_by(role="admin", status="active").all())
        return []

    def email_counterpart(self, result: TransitionResult) -> int:
        d = result.deliverable
        label = STATUS_LABELS.get(d.status, d.status)
        sent = 0
        for user in self.recipients_for(result):
            ok = send_email(
                to=user.email,
                subject=f"{d.title}: {label}",
                template="deliverable_status.html",
                recipient=user,
                deliverable=d,
                event=result.event,
                status_label=label,
                link=url_for("deliverables.detail", deliverable_id=d.id, _external=True),
            )
            sent += int(bool(ok))
        return sent

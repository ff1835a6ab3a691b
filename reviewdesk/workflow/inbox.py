# reviewdesk/workflow/inbox.py
"""Read-side projections over deliverable listings.

Nothing here caches or mutates; callers pass whatever listing they loaded.
"""
from collections import Counter
from dataclasses import dataclass, field

from ..models.deliverable import STATUSES, PENDING_REVIEW, NEEDS_CHANGES, APPROVED
from .guard import ADMIN


@dataclass
class Inbox:
    role: str
    awaiting_approval: list = field(default_factory=list)
    awaiting_revision: list = field(default_factory=list)
    ready_to_deliver: list = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.awaiting_approval) + len(self.awaiting_revision) + len(self.ready_to_deliver)

    def to_dict(self, serialize=lambda d: d.to_dict()):
        data = {
            "role": self.role,
            "awaiting_approval": [serialize(d) for d in self.awaiting_approval],
            "total": self.total,
        }
        if self.role == ADMIN:
            data["awaiting_revision"] = [serialize(d) for d in self.awaiting_revision]
            data["ready_to_deliver"] = [serialize(d) for d in self.ready_to_deliver]
        return data


def _scoped(deliverables, project_id=None):
    for d in deliverables:
        if project_id is None or d.project_id == project_id:
            yield d


def _with_status(deliverables, status, project_id=None):
    return [d for d in _scoped(deliverables, project_id) if d.status == status]


def pending_approvals(deliverables, project_id=None):
    """Deliverables awaiting client approval, i.e. exactly those in pending_review."""
    return _with_status(deliverables, PENDING_REVIEW, project_id)


def build_inbox(deliverables, role, project_id=None) -> Inbox:
    """Everything waiting on ``role``.

    Clients get the approval queue only. Admins see the same approval queue
    (work they are waiting on) plus items sent back for revision and items
    approved but not yet delivered.
    """
    items = list(_scoped(deliverables, project_id))
    inbox = Inbox(role=role, awaiting_approval=pending_approvals(items))
    if role == ADMIN:
        inbox.awaiting_revision = _with_status(items, NEEDS_CHANGES)
        inbox.ready_to_deliver = _with_status(items, APPROVED)
    return inbox


def status_counts(deliverables, project_id=None) -> dict:
    counts = Counter(d.status for d in _scoped(deliverables, project_id))
    data = {s: counts.get(s, 0) for s in STATUSES}
    data["total"] = sum(data.values())
    return data

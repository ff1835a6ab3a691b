# reviewdesk/workflow/engine.py
"""The deliverable review state machine.

    draft --submit--> pending_review
    pending_review --approve--> approved
    pending_review --request_changes--> needs_changes
    needs_changes --submit (version + 1)--> pending_review
    approved --deliver--> delivered            (terminal)

Each operation loads the current record, asks the guard, then hands one
conditional write (state + event) to the store. The engine never retries;
see ``retrying`` for the caller-side single retry on a lost race.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from ..models.deliverable import NEEDS_CHANGES
from ..models.event import WorkflowEvent
from ..models.fileasset import DeliverableFile
from . import guard
from .errors import InvalidTransition, ValidationError, ConcurrentModification

log = logging.getLogger(__name__)


@dataclass
class TransitionResult:
    action: str
    from_status: str
    deliverable: object
    event: WorkflowEvent

    @property
    def to_status(self) -> str:
        return self.deliverable.status


class WorkflowEngine:

    def __init__(self, store, clock: Callable[[], datetime] = datetime.utcnow):
        self.store = store
        self.clock = clock

    # -----------------
    # Public operations
    # -----------------

    def submit_for_review(self, deliverable_id, actor_role, message: Optional[str] = None,
                          actor_id=None) -> TransitionResult:
        return self._submit(deliverable_id, actor_role, message, actor_id, guard.SUBMIT)

    def resubmit(self, deliverable_id, actor_role, message: Optional[str] = None,
                 actor_id=None) -> TransitionResult:
        """Submit again after changes were requested; refused from draft."""
        return self._submit(deliverable_id, actor_role, message, actor_id, guard.RESUBMIT)

    def _submit(self, deliverable_id, actor_role, message, actor_id, action):
        def effects(d, now):
            changes = {}
            if d.status == NEEDS_CHANGES:
                changes["version"] = d.version + 1
            if d.submitted_at is None:
                changes["submitted_at"] = now
            return changes, ()

        return self._transition(deliverable_id, action, actor_role, actor_id,
                                _clean(message), effects)

    def approve(self, deliverable_id, actor_role, message: Optional[str] = None,
                actor_id=None) -> TransitionResult:
        def effects(d, now):
            return {"approved_at": now}, ()

        return self._transition(deliverable_id, guard.APPROVE, actor_role, actor_id,
                                _clean(message), effects)

    def request_changes(self, deliverable_id, actor_role, feedback, actor_id=None) -> TransitionResult:
        def validate():
            if not _clean(feedback):
                raise ValidationError("feedback", "Feedback is required when requesting changes.")

        def effects(d, now):
            return {}, ()

        return self._transition(deliverable_id, guard.REQUEST_CHANGES, actor_role, actor_id,
                                _clean(feedback), effects, validate=validate)

    def deliver(self, deliverable_id, actor_role, delivery_notes: Optional[str] = None,
                final_files=None, actor_id=None) -> TransitionResult:
        def effects(d, now):
            # appended after the review files so the review history stays intact
            start = d.next_file_position()
            files = [
                DeliverableFile.from_payload(data, kind="final", position=start + i)
                for i, data in enumerate(final_files or [])
            ]
            return {"delivered_at": now}, files

        return self._transition(deliverable_id, guard.DELIVER, actor_role, actor_id,
                                _clean(delivery_notes), effects)

    # -----------------
    # Internals
    # -----------------

    def _transition(self, deliverable_id, action, actor_role, actor_id, note, effects, validate=None):
        d = self.store.load(deliverable_id)
        from_status, from_version = d.status, d.version

        if not guard.allowed(actor_role, from_status, action):
            log.warning(
                "Rejected %s on deliverable %s: role=%s status=%s",
                action, deliverable_id, actor_role, from_status,
            )
            raise InvalidTransition(action, from_status, actor_role)

        if validate is not None:
            validate()

        now = self.clock()
        changes, files = effects(d, now)
        changes["status"] = guard.target_status(action)
        changes["updated_at"] = now

        event = WorkflowEvent(
            action=action,
            from_status=from_status,
            to_status=changes["status"],
            version=changes.get("version", from_version),
            actor_role=actor_role,
            actor_id=actor_id,
            note=note,
            created_at=now,
        )

        updated = self.store.save_if_version_matches(
            deliverable_id,
            changes,
            expected_status=from_status,
            expected_version=from_version,
            event=event,
            files=files,
        )
        log.info(
            "Deliverable %s: %s -> %s (v%s) by %s",
            deliverable_id, from_status, updated.status, updated.version, actor_role,
        )
        return TransitionResult(action=action, from_status=from_status, deliverable=updated, event=event)


def retrying(operation, *args, retries: int = 1, **kwargs):
    """Call ``operation`` and re-run it after a lost optimistic-lock race.

    The operation reloads and re-checks the guard on every attempt, so a
    retry after a racing transition usually ends in InvalidTransition
    rather than a second conflict.
    """
    attempt = 0
    while True:
        try:
            return operation(*args, **kwargs)
        except ConcurrentModification as e:
            if attempt >= retries:
                raise
            attempt += 1
            log.info("Retrying after concurrent modification of deliverable %s (attempt %s)",
                     e.deliverable_id, attempt)


def _clean(text) -> Optional[str]:
    if text is None:
        return None
    text = str(text).strip()
    return text or None

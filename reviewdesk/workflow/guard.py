# reviewdesk/workflow/guard.py
"""Who may move a deliverable along which edge.

This table is the single source of truth for transition permissions. Routes
and the engine both ask it; nothing else decides.
"""
from ..models.deliverable import (
    DRAFT,
    PENDING_REVIEW,
    NEEDS_CHANGES,
    APPROVED,
    DELIVERED,
)

ADMIN = "admin"
CLIENT = "client"

SUBMIT = "submit"
RESUBMIT = "resubmit"
APPROVE = "approve"
REQUEST_CHANGES = "request_changes"
DELIVER = "deliver"

ACTIONS = (SUBMIT, APPROVE, REQUEST_CHANGES, DELIVER)

# action -> role -> statuses the action may start from
PERMISSIONS = {
    SUBMIT: {ADMIN: frozenset({DRAFT, NEEDS_CHANGES})},
    # alias of submit, only meaningful after changes were requested
    RESUBMIT: {ADMIN: frozenset({NEEDS_CHANGES})},
    APPROVE: {CLIENT: frozenset({PENDING_REVIEW})},
    REQUEST_CHANGES: {CLIENT: frozenset({PENDING_REVIEW})},
    DELIVER: {ADMIN: frozenset({APPROVED})},
}

TARGETS = {
    SUBMIT: PENDING_REVIEW,
    RESUBMIT: PENDING_REVIEW,
    APPROVE: APPROVED,
    REQUEST_CHANGES: NEEDS_CHANGES,
    DELIVER: DELIVERED,
}

TERMINAL_STATES = frozenset({DELIVERED})


def allowed(role, current_status, action) -> bool:
    if current_status in TERMINAL_STATES:
        return False
    return current_status in PERMISSIONS.get(action, {}).get(role, frozenset())


def available_actions(role, current_status) -> list[str]:
    return [a for a in ACTIONS if allowed(role, current_status, a)]


def target_status(action) -> str:
    return TARGETS[action]


def is_terminal(status) -> bool:
    return status in TERMINAL_STATES

# reviewdesk/models/deliverable.py
from datetime import datetime
from ..extensions import db


DRAFT = "draft"
PENDING_REVIEW = "pending_review"
NEEDS_CHANGES = "needs_changes"
APPROVED = "approved"
DELIVERED = "delivered"

STATUSES = (DRAFT, PENDING_REVIEW, NEEDS_CHANGES, APPROVED, DELIVERED)

TYPES = (
    "document", "image", "video", "audio", "design",
    "code", "presentation", "spreadsheet", "other",
)


class Deliverable(db.Model):
    __tablename__ = "deliverable"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("project.id"), nullable=False, index=True)

    title = db.Column(db.String(200), nullable=False, index=True)
    description = db.Column(db.Text)
    type = db.Column(db.String(30), default="other", nullable=False, index=True)

    # only ever written by the workflow engine
    status = db.Column(db.String(30), default=DRAFT, nullable=False, index=True)
    version = db.Column(db.Integer, default=1, nullable=False)

    submitted_at = db.Column(db.DateTime)
    approved_at = db.Column(db.DateTime)
    delivered_at = db.Column(db.DateTime)
    due_date = db.Column(db.Date)

    created_by = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    project = db.relationship("Project", back_populates="deliverables")
    creator = db.relationship("User", foreign_keys=[created_by])

    files = db.relationship(
        "DeliverableFile",
        back_populates="deliverable",
        lazy="selectin",
        order_by="DeliverableFile.position",
        cascade="all, delete-orphan",
    )
    events = db.relationship(
        "WorkflowEvent",
        back_populates="deliverable",
        lazy="select",
        order_by="WorkflowEvent.id",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        db.Index("ix_deliverable_project_status", "project_id", "status"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status == DELIVERED

    def next_file_position(self) -> int:
        return max((f.position for f in self.files), default=-1) + 1

    def to_dict(self, include_files=True):
        data = {
            "id": self.id,
            "project_id": self.project_id,
            "title": self.title,
            "description": self.description,
            "type": self.type,
            "status": self.status,
            "version": self.version,
            "submitted_at": _iso(self.submitted_at),
            "approved_at": _iso(self.approved_at),
            "delivered_at": _iso(self.delivered_at),
            "due_date": _iso(self.due_date),
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_files:
            data["files"] = [f.to_dict() for f in self.files]
        return data


def _iso(dt):
    return dt.isoformat() if dt else None

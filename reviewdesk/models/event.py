# reviewdesk/models/event.py
from datetime import datetime
from ..extensions import db


class WorkflowEvent(db.Model):
    """One committed status transition. Written in the same transaction as the state change."""
    __tablename__ = "workflow_event"

    id = db.Column(db.Integer, primary_key=True)
    deliverable_id = db.Column(
        db.Integer, db.ForeignKey("deliverable.id", ondelete="CASCADE"), nullable=False, index=True
    )

    action = db.Column(db.String(30), nullable=False)
    from_status = db.Column(db.String(30), nullable=False)
    to_status = db.Column(db.String(30), nullable=False, index=True)
    version = db.Column(db.Integer, nullable=False)

    actor_role = db.Column(db.String(20), nullable=False)
    actor_id = db.Column(db.Integer, db.ForeignKey("user.id"), index=True)

    # approve message, change request feedback, delivery notes
    note = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    deliverable = db.relationship("Deliverable", back_populates="events")
    actor = db.relationship("User", lazy="joined")

    @property
    def timestamp(self):
        return self.created_at

    def to_dict(self):
        return {
            "id": self.id,
            "deliverable_id": self.deliverable_id,
            "action": self.action,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "version": self.version,
            "actor_role": self.actor_role,
            "actor_id": self.actor_id,
            "note": self.note,
            "timestamp": self.created_at.isoformat() if self.created_at else None,
        }

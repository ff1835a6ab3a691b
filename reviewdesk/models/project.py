# reviewdesk/models/project.py
from datetime import datetime
from ..extensions import db


class Project(db.Model):
    __tablename__ = "project"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False, index=True)

    # client who reviews this project's deliverables
    client_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    client = db.relationship("User", back_populates="projects")

    deliverables = db.relationship(
        "Deliverable",
        back_populates="project",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

# reviewdesk/models/fileasset.py
from datetime import datetime
from ..extensions import db


class DeliverableFile(db.Model):
    """A file reference attached to a deliverable.

    Storage lives elsewhere; only the url/thumbnail pair is kept here.
    """
    __tablename__ = "deliverable_file"

    id = db.Column(db.Integer, primary_key=True)
    deliverable_id = db.Column(
        db.Integer, db.ForeignKey("deliverable.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # review = shared while in review, final = attached on delivery
    kind = db.Column(db.String(20), default="review", nullable=False, index=True)
    position = db.Column(db.Integer, default=0, nullable=False)

    url = db.Column(db.String(1024), nullable=False)
    thumbnail_url = db.Column(db.String(1024))
    name = db.Column(db.String(255))
    mime_type = db.Column(db.String(120))

    uploaded_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    deliverable = db.relationship("Deliverable", back_populates="files")

    @classmethod
    def from_payload(cls, data: dict, *, kind: str = "review", position: int = 0) -> "DeliverableFile":
        # accept both snake_case and the camelCase the portal frontend sends
        return cls(
            kind=kind,
            position=position,
            url=data.get("url"),
            thumbnail_url=data.get("thumbnail_url") or data.get("thumbnailUrl"),
            name=data.get("name") or data.get("filename"),
            mime_type=data.get("mime_type") or data.get("mimeType"),
        )

    def to_dict(self):
        return {
            "id": self.id,
            "kind": self.kind,
            "url": self.url,
            "thumbnail_url": self.thumbnail_url,
            "name": self.name,
            "mime_type": self.mime_type,
            "uploaded_at": self.uploaded_at.isoformat() if self.uploaded_at else None,
        }

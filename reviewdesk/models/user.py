# reviewdesk/models/user.py
from datetime import datetime
from werkzeug.security import generate_password_hash, check_password_hash
from flask_login import UserMixin
from ..extensions import db


ROLES = ("admin", "client")


class User(UserMixin, db.Model):
    __tablename__ = "user"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)

    password_hash = db.Column(db.String(255))

    # admin = agency staff, client = reviewer on the customer side
    role = db.Column(db.String(20), nullable=False, default="client", index=True)

    # active|suspended
    status = db.Column(db.String(20), default="active", index=True)
    last_login_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    projects = db.relationship(
        "Project",
        back_populates="client",
        lazy="selectin",
    )

    # --- Auth helpers ---
    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return bool(self.password_hash) and check_password_hash(self.password_hash, password)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_suspended(self) -> bool:
        return self.status == "suspended"

    def mark_login(self):
        self.last_login_at = datetime.utcnow()

    def to_dict(self):
        return {"id": self.id, "name": self.name, "email": self.email, "role": self.role}

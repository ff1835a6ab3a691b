from flask import Blueprint

deliverables_bp = Blueprint("deliverables", __name__)

from . import routes  # noqa: E402,F401

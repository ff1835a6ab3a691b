from flask import jsonify, request, current_app
from werkzeug.exceptions import HTTPException
from flask_wtf.csrf import CSRFError
from ...extensions import db
from ...workflow.errors import WorkflowError
from . import errors_bp


# Workflow rejections (not found, guard denied, bad payload, lost race)
@errors_bp.app_errorhandler(WorkflowError)
def err_workflow(e: WorkflowError):
    return jsonify(e.to_dict()), e.http_status

# 401 – Unauthorized
@errors_bp.app_errorhandler(401)
def err_401(e):
    return jsonify({"error": "unauthorized", "message": "Login required."}), 401

# 403 – Forbidden
@errors_bp.app_errorhandler(403)
def err_403(e):
    return jsonify({"error": "forbidden", "message": "You don't have access to this."}), 403

# 404 – Not Found
@errors_bp.app_errorhandler(404)
def err_404(e):
    return jsonify({"error": "not_found", "path": request.path}), 404

# CSRF – typically treated as 400 Bad Request
@errors_bp.app_errorhandler(CSRFError)
def err_csrf(e):
    return jsonify({"error": "csrf", "message": e.description}), 400

# 500 – Internal Server Error
@errors_bp.app_errorhandler(500)
def err_500(e):
    # if a DB action caused this, rollback so app isn't stuck in bad transaction
    db.session.rollback()
    return jsonify({"error": "server_error"}), 500

# Fallback for uncaught HTTPException
@errors_bp.app_errorhandler(HTTPException)
def err_http(e: HTTPException):
    return jsonify({"error": e.name.lower().replace(" ", "_"), "message": e.description}), e.code

# Last-resort: any other Exception
@errors_bp.app_errorhandler(Exception)
def err_unexpected(e):
    db.session.rollback()
    current_app.logger.exception("Unhandled error on %s %s", request.method, request.path)
    # Don't leak internals, just show generic 500
    return jsonify({"error": "server_error"}), 500

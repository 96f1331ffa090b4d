"""Error handlers for the application."""
from flask import jsonify
from werkzeug.exceptions import HTTPException

from portal.core.errors import IntegrationError


def register_error_handlers(app):
    """Register JSON error handlers with the Flask app."""

    @app.errorhandler(IntegrationError)
    def integration_error(error: IntegrationError):
        """Map the integration error taxonomy to its HTTP status."""
        if error.status >= 500:
            app.logger.error(f"{type(error).__name__}: {error.detail}", exc_info=error)
        else:
            app.logger.info(f"{type(error).__name__} ({error.status}): {error.detail}")
        return jsonify(error.to_dict()), error.status

    @app.errorhandler(400)
    def bad_request(error):
        """Handle 400 Bad Request errors."""
        return jsonify({"ok": False, "error": _description(error, "Bad Request")}), 400

    @app.errorhandler(401)
    def unauthorized(error):
        """Handle 401 Unauthorized errors."""
        return jsonify({"ok": False, "error": "Authentication required"}), 401

    @app.errorhandler(403)
    def forbidden(error):
        """Handle 403 Forbidden errors."""
        return jsonify({"ok": False, "error": _description(error, "Insufficient permissions")}), 403

    @app.errorhandler(404)
    def not_found(error):
        """Handle 404 Not Found errors."""
        return jsonify({"ok": False, "error": _description(error, "Resource not found")}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({"ok": False, "error": "Method not allowed"}), 405

    @app.errorhandler(500)
    def internal_error(error):
        """Handle 500 Internal Server Error."""
        # ALWAYS log the full error (even in production) - logs are secure
        app.logger.error(f"Internal error: {error}", exc_info=True)
        return jsonify({"ok": False, "error": "Internal server error"}), 500

    @app.errorhandler(Exception)
    def handle_exception(error):
        """Handle uncaught exceptions."""
        # Pass through HTTP errors
        if isinstance(error, HTTPException):
            return error

        app.logger.error(f"Unhandled exception: {error}", exc_info=True)
        return jsonify({"ok": False, "error": "Internal server error"}), 500


def _description(error, default: str) -> str:
    """Use an explicit abort() description, otherwise a generic message."""
    description = getattr(error, "description", None)
    if not description or description == type(error).description:
        return default
    return str(description)

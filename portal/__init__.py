"""Portal Integrations Package.

To use the Flask app:
    from portal.flask_app import create_app

To use the integration framework directly:
    from portal.core.integrations import IntegrationRegistry, register_integrations
    from portal.core.integrations import cleanup_integration_accounts
"""
# Note: We don't import flask_app by default to avoid Flask dependency
# for CLI scripts that only use portal.core

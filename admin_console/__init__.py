"""Admin console for the identity, guardian and basic-io services.

To use the Flask app:
    from admin_console.flask_app import app

To call the backends without Flask:
    from admin_console.core.services import ServiceRegistry
"""
# flask_app is not imported here so CLI scripts can use admin_console.core
# without building the web app.

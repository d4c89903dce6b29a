"""
Flask application factory.

Creates and configures the Flask app, registers the analysis blueprint.
"""
from flask import Flask


def create_app():
    """Create and configure the Flask application."""
    from leadintel.logging_config import configure_logging
    from leadintel.config import SECRET_KEY

    app = Flask(__name__)

    configure_logging(app)

    app.secret_key = SECRET_KEY
    app.json.sort_keys = False

    from leadintel.routes.analysis import bp as analysis_bp
    app.register_blueprint(analysis_bp)

    # Import models so Base.metadata knows about them (required for SQLAlchemy).
    import importlib
    importlib.import_module('leadintel.models.lead')

    return app

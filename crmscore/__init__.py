"""
Flask application factory.

Creates and configures the app and registers all blueprints.
"""
from flask import Flask


def create_app():
    """Create and configure the Flask application."""
    from crmscore.config import SECRET_KEY
    from crmscore.logging_config import configure_logging

    app = Flask(__name__)

    configure_logging(app)

    app.secret_key = SECRET_KEY
    app.json.sort_keys = False

    from crmscore.routes.analytics import bp as analytics_bp
    from crmscore.routes.dashboard import bp as dashboard_bp
    from crmscore.routes.deals import bp as deals_bp
    from crmscore.routes.leads import bp as leads_bp
    from crmscore.routes.scoring import bp as scoring_bp

    app.register_blueprint(dashboard_bp)
    app.register_blueprint(scoring_bp)
    app.register_blueprint(leads_bp)
    app.register_blueprint(deals_bp)
    app.register_blueprint(analytics_bp)

    # Import models so Base.metadata knows about them.
    # Schema is managed by Alembic, no create_all() here.
    import importlib
    importlib.import_module('crmscore.models.lead')
    importlib.import_module('crmscore.models.deal')

    return app

# backend/khata/__init__.py
from __future__ import annotations

from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(app.config["LOG_LEVEL"])

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Stores and the billing engine share the request-scoped session
    from .stores import CatalogStore, LedgerStore, CATALOG_EXTENSION_KEY, LEDGER_EXTENSION_KEY
    from .services.billing_service import BillingEngine, ENGINE_EXTENSION_KEY

    catalog = CatalogStore(db.session, default_min_stock_level=app.config["DEFAULT_MIN_STOCK_LEVEL"])
    ledger = LedgerStore(db.session)
    app.extensions[CATALOG_EXTENSION_KEY] = catalog
    app.extensions[LEDGER_EXTENSION_KEY] = ledger
    app.extensions[ENGINE_EXTENSION_KEY] = BillingEngine(catalog, ledger)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.products import products_bp
    from .routes.customers import customers_bp
    from .routes.billing import billing_bp
    from .routes.dashboard import dashboard_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(billing_bp)
    app.register_blueprint(dashboard_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app

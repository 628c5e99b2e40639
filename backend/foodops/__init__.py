# backend/foodops/__init__.py
from __future__ import annotations

from flask import Flask, request

from .config import Config
from .extensions import db, migrate, PAYMENT_GATEWAY_KEY, PAYOUT_FEES_KEY


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.from_mapping(test_config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Payment collaborators are built once here and looked up per request
    from .services.payment_gateway import GatewaySettings, MidtransClient
    from .services.payout_fees import PayoutFeeSchedule

    app.extensions[PAYMENT_GATEWAY_KEY] = MidtransClient(GatewaySettings.from_config(app.config))
    try:
        app.extensions[PAYOUT_FEES_KEY] = PayoutFeeSchedule.from_json(app.config.get("MIDTRANS_PAYOUT_FEES"))
    except ValueError:
        app.logger.warning("MIDTRANS_PAYOUT_FEES is not a valid JSON object; using default payout fees")
        app.extensions[PAYOUT_FEES_KEY] = PayoutFeeSchedule()

    # Register blueprints
    from .routes.system import system_bp
    from .routes.products import products_bp
    from .routes.orders import orders_bp
    from .routes.payments import payments_bp
    from .routes.inventory import inventory_bp
    from .routes.deliveries import deliveries_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(deliveries_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = set(app.config.get("CORS_ALLOWED_ORIGINS") or [])
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app

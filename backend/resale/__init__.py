# backend/resale/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate



def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    # Applied before init_app: the engine is bound from config at that point
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # One gateway adapter per app; the simulated one keeps its minted orders
    from .services.gateway_service import get_gateway
    app.extensions["payment_gateway"] = get_gateway(app.config["GATEWAY_MODE"])

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.credentials import credentials_bp
    from .routes.payments import payments_bp  # Admin and buyer gateway payments
    from .routes.orders import orders_bp  # Cart, checkout and order reads
    from .routes.lots import lots_bp  # Admin resale inventory
    from .routes.brokers import brokers_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(credentials_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(lots_bp)
    app.register_blueprint(brokers_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app

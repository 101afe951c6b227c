# backend/pdv/__init__.py
from flask import Flask, jsonify, request

from .config import Config
from .extensions import db, migrate


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.auth import auth_bp
    from .routes.employees import employees_bp
    from .routes.products import products_bp
    from .routes.inventory import inventory_bp
    from .routes.sales import sales_bp
    from .routes.registers import registers_bp
    from .routes.tabs import tabs_bp
    from .routes.returns import returns_bp
    from .routes.customers import customers_bp
    from .routes.payments import payments_bp
    from .routes.imports import imports_bp
    from .routes.reports import reports_bp
    from .routes.sync import sync_bp
    from .routes.variants import variants_bp
    from .routes.forecast import forecast_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(employees_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(registers_bp)
    app.register_blueprint(tabs_bp)
    app.register_blueprint(returns_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(imports_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(sync_bp)
    app.register_blueprint(variants_bp)
    app.register_blueprint(forecast_bp)

    from .errors import register_error_handlers
    register_error_handlers(app)

    @app.get("/health")
    def health():
        return jsonify({"status": "ok"}), 200

    @app.after_request
    def queue_offline_write(response):
        if not app.config.get("OFFLINE_MODE"):
            return response

        from .services.sync_service import MUTATING_METHODS, enqueue

        path = request.path
        if (
            request.method in MUTATING_METHODS
            and 200 <= response.status_code < 300
            and path.startswith("/api/")
            and not path.startswith(("/api/auth", "/api/sync"))
        ):
            enqueue(method=request.method, path=path, payload=request.get_json(silent=True))
        return response

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin and origin in app.config.get("CORS_ORIGINS", []):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app

# --- marketplace/__init__.py ---
from flask import Flask, jsonify
from .config import Config
from .extensions import db, jwt, cors, migrate, configure_sqlite_locking
from .utils.log import configure_logging


def create_app(config_object=None, overrides=None):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)
    if overrides:
        app.config.update(overrides)
    Config.init_app(app)
    configure_logging(app.config.get("LOG_LEVEL", "INFO"))

    # Init extensions
    db.init_app(app)
    jwt.init_app(app)
    cors.init_app(app, resources={r"/api/*": {"origins": "*"}})
    migrate.init_app(app, db)

    # Register blueprints
    from .cart import bp as cart_bp; app.register_blueprint(cart_bp)
    from .order import bp as order_bp; app.register_blueprint(order_bp)

    from .errors import register_error_handlers
    register_error_handlers(app)

    from .cli import register_cli
    register_cli(app)

    @app.get("/")
    def health():
        return jsonify(ok=True, msg="API running", currency=app.config["CURRENCY"])

    with app.app_context():
        configure_sqlite_locking(db.engine)
        from . import model  # noqa: F401
        db.create_all()

    return app

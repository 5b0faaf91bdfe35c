import os
from decimal import Decimal


class Config:
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JSON_SORT_KEYS = False
    ENV = os.getenv("FLASK_ENV", "development")
    JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", "dev-secret-change-me")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # pricing
    CURRENCY = os.getenv("CURRENCY", "NPR")
    DEFAULT_SHIPPING_FEE = Decimal(os.getenv("DEFAULT_SHIPPING_FEE", "150"))
    FREE_SHIPPING_THRESHOLD = Decimal(os.getenv("FREE_SHIPPING_THRESHOLD", "3000"))
    COUPON_CODE_PATTERN = os.getenv("COUPON_CODE_PATTERN", r"^[A-Z0-9_-]{3,30}$")

    # seconds a writer waits for the SQLite lock
    SQLITE_BUSY_TIMEOUT = int(os.getenv("SQLITE_BUSY_TIMEOUT", "30"))

    @staticmethod
    def init_app(app):
        if not app.config.get("SQLALCHEMY_DATABASE_URI"):
            if not os.getenv("DATABASE_URL"):
                os.makedirs(app.instance_path, exist_ok=True)
                app.config["SQLALCHEMY_DATABASE_URI"] = f"sqlite:///{os.path.join(app.instance_path, 'app.db')}"
            else:
                app.config["SQLALCHEMY_DATABASE_URI"] = os.getenv("DATABASE_URL")

        if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
            options = dict(app.config.get("SQLALCHEMY_ENGINE_OPTIONS") or {})
            connect_args = dict(options.get("connect_args") or {})
            connect_args.setdefault("timeout", app.config["SQLITE_BUSY_TIMEOUT"])
            connect_args.setdefault("check_same_thread", False)
            options["connect_args"] = connect_args
            app.config["SQLALCHEMY_ENGINE_OPTIONS"] = options


class TestingConfig(Config):
    TESTING = True
    JWT_SECRET_KEY = "test-secret-key-with-enough-length-for-hs256"
    LOG_LEVEL = "WARNING"

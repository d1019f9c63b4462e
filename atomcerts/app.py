import logging
import os
import sys

from flask import Flask
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

from . import models  # noqa: E402,F401  registers tables on db.metadata


def _configure_render_logging() -> None:
    for name in ("atomcerts.render", "atomcerts.images"):
        logger = logging.getLogger(name)
        if not logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(
                logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
            )
            logger.addHandler(handler)
        logger.setLevel(logging.INFO)


def create_app():
    app = Flask(__name__)
    app.secret_key = os.getenv("SECRET_KEY", "dev")
    app.config["PREFERRED_URL_SCHEME"] = "https"

    DB_USER = os.getenv("DB_USER", "atomcerts")
    DB_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
    DB_HOST = os.getenv("DB_HOST", "db")
    DB_NAME = os.getenv("DB_NAME", "atomcerts")
    DATABASE_URL = os.getenv(
        "DATABASE_URL",
        f"postgresql+psycopg2://{DB_USER}:{DB_PASSWORD}@{DB_HOST}/{DB_NAME}",
    )

    app.config["SQLALCHEMY_DATABASE_URI"] = DATABASE_URL
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["MAX_CONTENT_LENGTH"] = 25 * 1024 * 1024

    app.config["SITE_ROOT"] = os.getenv("SITE_ROOT", "/srv")
    app.config["RENDER_IMAGE_TIMEOUT"] = float(os.getenv("RENDER_IMAGE_TIMEOUT", "8"))
    app.config["RENDER_RASTER_SCALE"] = float(os.getenv("RENDER_RASTER_SCALE", "2.0"))
    app.config["RENDER_DEFAULT_FORMAT"] = os.getenv("RENDER_DEFAULT_FORMAT", "pdf")
    asset_roots = [os.path.join(app.root_path, "assets")]
    extra_root = os.getenv("RENDER_ASSET_ROOT")
    if extra_root:
        asset_roots.append(extra_root)
    app.config["RENDER_ASSET_ROOTS"] = tuple(asset_roots)

    db.init_app(app)
    _configure_render_logging()

    from .routes.auth import bp as auth_bp
    from .routes.certificates import bp as certificates_bp
    from .routes.templates import bp as templates_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(certificates_bp)
    app.register_blueprint(templates_bp)

    @app.get("/health")
    def health():  # pragma: no cover - simple healthcheck
        return "OK", 200

    return app

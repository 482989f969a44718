"""Application entrypoint for the development policy service."""
from __future__ import annotations

from flask import Flask

from config import load_config
from web.routes import bp as main_blueprint


def create_app() -> Flask:
    config = load_config()
    app = Flask(__name__)
    app.config.update(
        SERVICE_HOST=config.host,
        SERVICE_PORT=config.port,
        REQUEST_SIZE_LIMIT=config.request_size_limit,
    )
    app.register_blueprint(main_blueprint)
    return app


if __name__ == "__main__":
    settings = load_config()
    create_app().run(host=settings.host, port=settings.port, debug=settings.debug)

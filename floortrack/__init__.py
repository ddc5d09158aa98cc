import atexit

from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_cors import CORS

db = SQLAlchemy()
migrate = Migrate()


def create_app(testing: bool = False, config_object=None):
    app = Flask(__name__, instance_relative_config=True)
    if config_object is None:
        from .config import Config, TestingConfig
        config_object = TestingConfig if testing else Config
    app.config.from_object(config_object)
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    CORS(app)
    db.init_app(app)
    migrate.init_app(app, db)

    from . import models  # noqa: F401
    from .services import Services
    from .routes import bp as main_bp
    from .api import api as api_bp
    from .cli import register_commands

    services = Services.from_app(app)
    app.extensions["floortrack"] = services
    app.teardown_appcontext(services.teardown)
    atexit.register(services.close)

    app.register_blueprint(main_bp)
    app.register_blueprint(api_bp, url_prefix="/api")
    register_commands(app)

    return app

import logging

from flask import Flask
from roombook.config import DevelopmentConfig
from roombook.extensions import db, migrate


def create_app(config_class=DevelopmentConfig):
    app = Flask(__name__)
    app.config.from_object(config_class)

    logging.basicConfig(
        level=app.config.get('LOG_LEVEL', 'INFO'),
        format='[%(asctime)s] %(levelname)s %(name)s: %(message)s',
    )

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    from roombook import models  # noqa: F401
    from roombook.engine import Engine
    from roombook.tasks import celery_init_app

    app.extensions['roombook'] = Engine(db.session, app.config)
    celery_init_app(app)

    # Register Blueprints
    from roombook.api.routes.auth import auth_bp
    from roombook.api.routes.bookings import bookings_bp
    from roombook.api.routes.notifications import notifications_bp

    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(bookings_bp, url_prefix='/api/bookings')
    app.register_blueprint(notifications_bp, url_prefix='/api/notifications')

    @app.route('/health')
    def health():
        return {"status": "ok", "app": "roombook"}

    return app

import logging

from flask import Flask, jsonify
from flask_wtf.csrf import CSRFProtect

from config import Config
from portal.errors import PortalError

csrf = CSRFProtect()


def _configure_logging(level):
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    for noisy in ('google', 'urllib3', 'grpc'):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    _configure_logging(app.config.get('LOG_LEVEL', 'INFO'))

    csrf.init_app(app)

    # Initialize Firebase
    if app.config.get('FIREBASE_INIT', True):
        from portal.firebase_init import init_firebase
        init_firebase(app.config)

    # Register current_user context processor and before_request
    from portal.decorators import load_current_user, get_current_user

    @app.before_request
    def before_request():
        load_current_user()

    @app.context_processor
    def inject_current_user():
        return {'current_user': get_current_user()}

    @app.errorhandler(PortalError)
    def handle_portal_error(error):
        return jsonify(error.to_dict()), error.status_code

    # Register blueprints
    from portal.routes import main, hr, teacher, profile
    app.register_blueprint(main.bp)
    app.register_blueprint(hr.bp)
    app.register_blueprint(teacher.bp)
    app.register_blueprint(profile.bp)

    logging.getLogger(__name__).info('Portal app created (testing=%s)', app.testing)
    return app

"""Flask application factory."""
import logging

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from salonhub.database import init_db

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'


def _configure_logging(app):
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(level)


def create_app(config_object='config.Config', config_overrides=None, notifier=None, payment_processor=None):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)
    if config_overrides:
        app.config.update(config_overrides)

    _configure_logging(app)

    # Sentry error tracking in production
    if app.config.get('SENTRY_DSN') and app.config.get('ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=app.config['SENTRY_DSN'],
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=app.config.get('ENV'),
        )

    from salonhub.services.email_service import init_mail
    init_mail(app)

    from salonhub.services.cache_service import init_cache
    init_cache(app)

    from salonhub.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: trust the reverse proxy headers
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)

    # Initialize both database partitions
    init_db(app)

    # Services are built once and shared through app.extensions
    from salonhub.container import build_services
    app.extensions['salonhub'] = build_services(
        app.config, notifier=notifier, payment_processor=payment_processor
    )

    from salonhub.middleware import load_tenant_context

    @app.before_request
    def before_request_handler():
        load_tenant_context()

    # Error Handlers
    from salonhub.exceptions import SaasError

    @app.errorhandler(SaasError)
    def handle_saas_error(error):
        """Typed application errors become JSON with their status code."""
        if error.status_code >= 500:
            logger.error(f"SaasError [{error.status_code}]: {error.message}")
        else:
            logger.warning(f"SaasError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({'status': 'error', 'message': error.description}), error.code

    @app.errorhandler(Exception)
    def internal_error(error):
        logger.exception(f"Unhandled Exception: {error}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from salonhub.blueprints.main import main_bp
    from salonhub.blueprints.metrics import metrics_bp
    from salonhub.blueprints.appointments import appointments_bp
    from salonhub.blueprints.admin import admin_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(metrics_bp)
    app.register_blueprint(appointments_bp)
    app.register_blueprint(admin_bp)

    from salonhub.cli_commands import init_cli_commands
    init_cli_commands(app)

    logger.info(f"SalonHub started (env={app.config.get('ENV')}, notifier={app.config.get('NOTIFIER')})")
    return app

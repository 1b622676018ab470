from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager
from flask_bcrypt import Bcrypt
from flask_mail import Mail

from asset_tracker.config import Config
from asset_tracker.logger import setup_logging, get_logger

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
mail = Mail()

logger = get_logger(__name__)


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)
    setup_logging(app)

    db.init_app(app)
    bcrypt.init_app(app)
    login_manager.init_app(app)
    mail.init_app(app)

    from asset_tracker.errors import UnauthorizedError, register_error_handlers
    from asset_tracker.models import User
    from asset_tracker.security import load_user_from_request

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    login_manager.request_loader(load_user_from_request)

    @login_manager.unauthorized_handler
    def unauthorized():
        raise UnauthorizedError('Authentication required')

    register_error_handlers(app)

    # Audit and notification subscribers run after commit only
    from asset_tracker.services import events
    from asset_tracker.services.audit import record_entity_change
    from asset_tracker.services.notifications import dispatch_workflow_event
    events.entity_changed.connect(record_entity_change)
    events.workflow_event.connect(dispatch_workflow_event)

    with app.app_context():
        @app.route('/api/health')
        def health():
            return jsonify({'status': 'ok'})

        # Import blueprints inside context
        from asset_tracker.routes import assets_bp, assignments_bp, transfers_bp
        from asset_tracker.routes.auth import auth_bp
        from asset_tracker.routes.users import users_bp
        from asset_tracker.routes.categories import categories_bp
        from asset_tracker.routes.notifications import notifications_bp
        from asset_tracker.routes.reports import reports_bp

        # Register blueprints
        app.register_blueprint(assets_bp)
        app.register_blueprint(assignments_bp)
        app.register_blueprint(transfers_bp)
        app.register_blueprint(auth_bp)
        app.register_blueprint(users_bp)
        app.register_blueprint(categories_bp)
        app.register_blueprint(notifications_bp)
        app.register_blueprint(reports_bp)

        # Create all database tables
        db.create_all()

    logger.info('Asset tracker initialised (database: %s)', app.config['SQLALCHEMY_DATABASE_URI'].split(':', 1)[0])
    return app

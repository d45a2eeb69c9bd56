from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:8080",
    "http://127.0.0.1:8080",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)

# A few questions per mini-game so a fresh database is playable
DEFAULT_QUESTIONS = {
    'kikadi': [
        "Quelle est votre citation inspirante préférée ?",
        "Quel est le pire cadeau que vous ayez reçu ?",
        "Décrivez votre dimanche idéal en une phrase.",
    ],
    'kidivrai': [
        "Raconte-nous ton plus gros mensonge d'enfance",
        "Quelle est la chose la plus folle que tu aies faite en vacances ?",
        "Raconte une rencontre improbable avec une célébrité.",
    ],
    'kideja': [
        "Qui a déjà mangé quelque chose qui était tombé par terre ?",
        "Qui a déjà oublié l'anniversaire d'un proche ?",
        "Qui a déjà fait semblant d'être malade pour éviter une soirée ?",
    ],
    'kidenous': [
        "Qui de vous est le plus peureux ?",
        "Qui de vous finirait célèbre ?",
        "Qui de vous survivrait le plus longtemps sur une île déserte ?",
    ],
}


def seed_questions() -> int:
    """Insert the default question pool, skipping texts already present."""
    from kiadisa.models import Question
    added = 0
    for game_type, texts in DEFAULT_QUESTIONS.items():
        for text in texts:
            if Question.query.filter_by(game_type=game_type, text=text).first():
                continue
            db.session.add(Question(text=text, game_type=game_type, category='general', ambiance='safe'))
            added += 1
    db.session.commit()
    return added


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from kiadisa.main import main
    flask_app.register_blueprint(main)

    from kiadisa.api.games import games
    # Mount game routes under /api to match frontend API client
    flask_app.register_blueprint(games, url_prefix='/api/games')

    from kiadisa.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    from kiadisa.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        from kiadisa.api.games import failure_response
        from kiadisa.services.games.errors import NotAuthenticated
        from kiadisa.services.games.session import OperationResult
        return failure_response(OperationResult.fail(NotAuthenticated()))

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            users = ['testuser1', 'testuser2', 'testuser3']
            for u in users:
                user = User(username=u)
                user.set_password('password')
                db.session.add(user)
            db.session.commit()
            seed_questions()
            print('Database has been reset and seeded!')

    @click.command('seed-questions')
    def seed_questions_command():
        """Adds the default question pool."""
        with flask_app.app_context():
            added = seed_questions()
            print(f'{added} questions added.')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(seed_questions_command)

    return flask_app

from datetime import datetime, timezone

from kiadisa import db, bcrypt
from flask_login import UserMixin


def _utcnow():
    return datetime.now(timezone.utc)


def _isoformat(value):
    return value.isoformat() if value else None


PHASE_ORDER = ('intro', 'answer', 'vote', 'reveal', 'results')
PHASE_ENDED = 'ended'
PHASES = PHASE_ORDER + (PHASE_ENDED,)
VOTE_TYPES = ('guess', 'bluff', 'truth')


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
        }


class Game(db.Model):
    __tablename__ = 'games'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(6), unique=True, nullable=False, index=True)
    host = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    status = db.Column(db.String(16), nullable=False, default='waiting')  # waiting, active, ended
    phase = db.Column(db.String(16), nullable=False, default='intro')
    current_round = db.Column(db.Integer, nullable=False, default=1)
    total_rounds = db.Column(db.Integer, nullable=False, default=5)
    settings = db.Column(db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    players = db.relationship('GamePlayer', back_populates='game', order_by='GamePlayer.id',
                              cascade='all, delete-orphan')
    rounds = db.relationship('Round', back_populates='game', order_by='Round.round_number',
                             cascade='all, delete-orphan')

    @property
    def mini_games(self):
        return list((self.settings or {}).get('miniGames') or [])

    def round_for(self, round_number):
        return Round.query.filter_by(game_id=self.id, round_number=round_number).first()

    def to_dict(self, include_players=True):
        data = {
            'id': self.id,
            'code': self.code,
            'host': self.host,
            'status': self.status,
            'phase': self.phase,
            'current_round': self.current_round,
            'total_rounds': self.total_rounds,
            'settings': self.settings or {},
            'created_at': _isoformat(self.created_at),
        }
        if include_players:
            data['players'] = [p.to_dict() for p in self.players]
        return data


class GamePlayer(db.Model):
    __tablename__ = 'game_players'
    __table_args__ = (db.UniqueConstraint('game_id', 'user_id', name='uq_game_players_game_user'),)
    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.Integer, db.ForeignKey('games.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    is_host = db.Column(db.Boolean, nullable=False, default=False)
    score = db.Column(db.Integer, nullable=False, default=0)
    xp = db.Column(db.Integer, nullable=False, default=0)
    coins = db.Column(db.Integer, nullable=False, default=0)
    joined_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    game = db.relationship('Game', back_populates='players')
    user = db.relationship('User')

    def to_dict(self):
        return {
            'id': self.id,
            'game_id': self.game_id,
            'user_id': self.user_id,
            'username': self.user.username if self.user else None,
            'is_host': self.is_host,
            'score': self.score,
            'xp': self.xp,
            'coins': self.coins,
        }


class Question(db.Model):
    __tablename__ = 'questions'
    id = db.Column(db.Integer, primary_key=True)
    text = db.Column(db.Text, nullable=False)
    game_type = db.Column(db.String(16), nullable=False, index=True)
    category = db.Column(db.String(32), nullable=True)
    ambiance = db.Column(db.String(16), nullable=True)

    def to_dict(self):
        return {
            'id': self.id,
            'text': self.text,
            'game_type': self.game_type,
            'category': self.category,
            'ambiance': self.ambiance,
        }


class Round(db.Model):
    __tablename__ = 'rounds'
    __table_args__ = (db.UniqueConstraint('game_id', 'round_number', name='uq_rounds_game_number'),)
    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.Integer, db.ForeignKey('games.id'), nullable=False, index=True)
    round_number = db.Column(db.Integer, nullable=False)
    mini_game = db.Column(db.String(16), nullable=False)
    question_id = db.Column(db.Integer, db.ForeignKey('questions.id'), nullable=True)
    status = db.Column(db.String(16), nullable=False, default='playing')  # playing, completed
    started_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    game = db.relationship('Game', back_populates='rounds')
    question = db.relationship('Question')
    answers = db.relationship('Answer', backref='round', lazy='dynamic', cascade='all, delete-orphan')
    votes = db.relationship('Vote', backref='round', lazy='dynamic', cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'game_id': self.game_id,
            'round_number': self.round_number,
            'mini_game': self.mini_game,
            'question': self.question.to_dict() if self.question else None,
            'status': self.status,
            'started_at': _isoformat(self.started_at),
            'completed_at': _isoformat(self.completed_at),
            'answer_count': self.answers.count(),
            'vote_count': self.votes.count(),
        }


class Answer(db.Model):
    __tablename__ = 'answers'
    __table_args__ = (db.UniqueConstraint('round_id', 'player_id', name='uq_answers_round_player'),)
    id = db.Column(db.Integer, primary_key=True)
    round_id = db.Column(db.Integer, db.ForeignKey('rounds.id'), nullable=False, index=True)
    player_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    content = db.Column(db.Text, nullable=False)
    is_bluff = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'round_id': self.round_id,
            'player_id': self.player_id,
            'content': self.content,
            'is_bluff': self.is_bluff,
            'created_at': _isoformat(self.created_at),
        }


class Vote(db.Model):
    __tablename__ = 'votes'
    __table_args__ = (db.UniqueConstraint('player_id', 'round_id', name='uq_votes_player_round'),)
    id = db.Column(db.Integer, primary_key=True)
    round_id = db.Column(db.Integer, db.ForeignKey('rounds.id'), nullable=False, index=True)
    player_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    target_player_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    answer_id = db.Column(db.Integer, db.ForeignKey('answers.id'), nullable=True)
    vote_type = db.Column(db.String(16), nullable=False)  # guess, bluff, truth
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'round_id': self.round_id,
            'player_id': self.player_id,
            'target_player_id': self.target_player_id,
            'answer_id': self.answer_id,
            'vote_type': self.vote_type,
            'created_at': _isoformat(self.created_at),
        }

import os
import logging

import redis
from flask import Flask, Response, current_app, jsonify, request
from flask_login import LoginManager, current_user, login_required
from werkzeug.exceptions import HTTPException

from .config import config
from .models import db, User
from .hackathon_registry import HackathonRegistry
from .idea_registry import IdeaRegistry
from .registration_service import TeamRegistrationService
from .role_manager import RoleManager
from shared.errors import RegistrationError
from shared.events import organization_channels
from shared.pubsub import EventSink, create_event_sink
from shared.validation import parse_id

logger = logging.getLogger(__name__)

login_manager = LoginManager()


@login_manager.user_loader
def load_user(user_id: str):
    user_pk = parse_id(user_id)
    return db.session.get(User, user_pk) if user_pk else None


@login_manager.request_loader
def load_user_from_request(req):
    """Resolve the caller from the identity header set by the auth gateway."""
    user_pk = parse_id(req.headers.get(current_app.config['USER_ID_HEADER']))
    return db.session.get(User, user_pk) if user_pk else None


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({'message': 'Authentication required'}), 401


def create_app(config_name: str = None, event_sink: EventSink = None) -> Flask:
    """Application factory for the registrar service."""
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config[config_name])

    logging.basicConfig(
        level=app.config['LOG_LEVEL'],
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    # Initialize extensions
    db.init_app(app)
    login_manager.init_app(app)

    # Initialize services
    if event_sink is None:
        event_sink = create_event_sink(app.config['EVENT_SINK'], app.config['REDIS_URL'])
    roles = RoleManager(event_sink)

    # Create tables
    with app.app_context():
        db.create_all()

    # Store services on app for access in routes
    app.event_sink = event_sink
    app.hackathons = HackathonRegistry(event_sink)
    app.ideas = IdeaRegistry()
    app.roles = roles
    app.registrations = TeamRegistrationService(event_sink, roles)

    register_error_handlers(app)
    register_api_routes(app)

    from .routes import ideas as idea_routes
    from .routes import roles as role_routes
    app.register_blueprint(idea_routes.bp, url_prefix=app.config['API_PREFIX'])
    app.register_blueprint(role_routes.bp, url_prefix=app.config['API_PREFIX'])

    return app


def register_error_handlers(app: Flask):
    """Every failure is answered with a JSON body."""

    @app.errorhandler(RegistrationError)
    def handle_registration_error(e: RegistrationError):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        return jsonify({'message': e.description}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(e: Exception):
        db.session.rollback()
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({'message': 'Internal server error', 'error': str(e)}), 500


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _field(data: dict, name: str, alias: str = None):
    """Read a body field by its snake_case name, falling back to the camelCase alias."""
    if name in data:
        return data[name]
    return data.get(alias) if alias else None


def register_api_routes(app: Flask):
    """Register API routes."""
    api = app.config['API_PREFIX']

    # ==================== Team Registration ====================

    @app.route(f'{api}/hackathons/<int:hackathon_id>/register', methods=['POST'])
    @login_required
    def api_register_team(hackathon_id: int):
        """Register a team for a hackathon."""
        data = _json_body()
        team = app.registrations.register(
            hackathon_id,
            current_user,
            team_name=_field(data, 'team_name', 'teamName'),
            idea_id=_field(data, 'idea_id', 'ideaId'),
            member_ids=_field(data, 'member_ids', 'memberIds')
        )

        return jsonify({
            'message': 'Team registered',
            'team': team.to_dict()
        }), 201

    @app.route(f'{api}/hackathons/<int:hackathon_id>/teams', methods=['GET'])
    @login_required
    def api_list_teams(hackathon_id: int):
        """List teams in a hackathon (organizers and admins)."""
        teams = app.registrations.get_teams(hackathon_id, current_user, privileged_only=True)
        return jsonify({
            'teams': [t.to_dict() for t in teams],
            'total': len(teams)
        })

    @app.route(f'{api}/hackathons/<int:hackathon_id>/teams/public', methods=['GET'])
    @login_required
    def api_list_public_teams(hackathon_id: int):
        """List teams in a hackathon (any member of the organization)."""
        teams = app.registrations.get_teams(hackathon_id, current_user)
        return jsonify({
            'teams': [t.to_dict() for t in teams],
            'total': len(teams)
        })

    @app.route(f'{api}/hackathons/<int:hackathon_id>/my', methods=['GET'])
    @login_required
    def api_my_team(hackathon_id: int):
        team = app.registrations.get_my_team(hackathon_id, current_user)
        return jsonify({'team': team.to_dict()})

    @app.route(f'{api}/my-teams', methods=['GET'])
    @login_required
    def api_my_teams():
        teams = app.registrations.get_my_teams(current_user)
        return jsonify({
            'teams': [t.to_dict() for t in teams],
            'total': len(teams)
        })

    @app.route(f'{api}/hackathons/<int:hackathon_id>/teams/<int:team_id>', methods=['PUT'])
    @login_required
    def api_update_team(hackathon_id: int, team_id: int):
        data = _json_body()
        team = app.registrations.update(
            hackathon_id,
            team_id,
            current_user,
            team_name=_field(data, 'team_name', 'teamName'),
            idea_id=_field(data, 'idea_id', 'ideaId'),
            member_ids=_field(data, 'member_ids', 'memberIds')
        )

        return jsonify({
            'message': 'Team updated',
            'team': team.to_dict()
        })

    @app.route(f'{api}/hackathons/<int:hackathon_id>/teams/<int:team_id>', methods=['DELETE'])
    @login_required
    def api_withdraw_team(hackathon_id: int, team_id: int):
        app.registrations.withdraw(hackathon_id, team_id, current_user)
        return jsonify({'message': 'Team withdrawn'})

    # ==================== Hackathons ====================

    @app.route(f'{api}/hackathons', methods=['POST'])
    @login_required
    def api_create_hackathon():
        data = _json_body()
        hackathon = app.hackathons.create_hackathon(
            current_user,
            title=data.get('title'),
            description=data.get('description'),
            minimum_team_size=_field(data, 'minimum_team_size', 'minimumTeamSize'),
            maximum_team_size=_field(data, 'maximum_team_size', 'maximumTeamSize'),
            is_active=_field(data, 'is_active', 'isActive') is not False,
            rounds=data.get('rounds')
        )

        return jsonify({
            'message': 'Hackathon created',
            'hackathon': hackathon.to_dict()
        }), 201

    @app.route(f'{api}/hackathons', methods=['GET'])
    @login_required
    def api_list_hackathons():
        active_only = request.args.get('active', 'false').lower() == 'true'
        limit = request.args.get('limit', 50, type=int)
        offset = request.args.get('offset', 0, type=int)

        hackathons = app.hackathons.list_hackathons(
            current_user,
            active_only=active_only,
            limit=limit,
            offset=offset
        )

        return jsonify({
            'hackathons': [h.to_dict() for h in hackathons],
            'total': len(hackathons),
            'limit': limit,
            'offset': offset
        })

    @app.route(f'{api}/hackathons/<int:hackathon_id>', methods=['GET'])
    @login_required
    def api_get_hackathon(hackathon_id: int):
        hackathon = app.hackathons.get_hackathon(hackathon_id, current_user)
        return jsonify({'hackathon': hackathon.to_dict()})

    @app.route(f'{api}/hackathons/<int:hackathon_id>', methods=['PUT'])
    @login_required
    def api_update_hackathon(hackathon_id: int):
        data = _json_body()
        hackathon = app.hackathons.update_hackathon(
            hackathon_id,
            current_user,
            title=data.get('title'),
            description=data.get('description'),
            is_active=_field(data, 'is_active', 'isActive'),
            minimum_team_size=_field(data, 'minimum_team_size', 'minimumTeamSize'),
            maximum_team_size=_field(data, 'maximum_team_size', 'maximumTeamSize'),
            rounds=data.get('rounds')
        )
        return jsonify({'message': 'Hackathon updated', 'hackathon': hackathon.to_dict()})

    @app.route(f'{api}/hackathons/<int:hackathon_id>/open', methods=['POST'])
    @login_required
    def api_open_registration(hackathon_id: int):
        hackathon = app.hackathons.set_registration_open(hackathon_id, current_user, True)
        return jsonify({'message': 'Registration opened', 'hackathon': hackathon.to_dict()})

    @app.route(f'{api}/hackathons/<int:hackathon_id>/close', methods=['POST'])
    @login_required
    def api_close_registration(hackathon_id: int):
        hackathon = app.hackathons.set_registration_open(hackathon_id, current_user, False)
        return jsonify({'message': 'Registration closed', 'hackathon': hackathon.to_dict()})

    # ==================== Real-time Events (SSE) ====================

    @app.route(f'{api}/events/org')
    @login_required
    def api_organization_events():
        """SSE endpoint for team, role and hackathon events of the caller's organization."""
        organization_id = current_user.organization_id

        def generate():
            sse_redis = redis.from_url(
                app.config['REDIS_URL'],
                decode_responses=True,
                socket_timeout=None,
                socket_connect_timeout=5
            )
            pubsub = sse_redis.pubsub(ignore_subscribe_messages=True)
            pubsub.subscribe(*organization_channels(organization_id))

            yield f"data: {{\"type\":\"connected\",\"organization_id\":\"{organization_id}\"}}\n\n"

            try:
                while True:
                    message = pubsub.get_message(timeout=30)
                    if message and message['type'] == 'message':
                        yield f"data: {message['data']}\n\n"
                    else:
                        yield ": keepalive\n\n"
            finally:
                pubsub.close()

        return Response(generate(), mimetype='text/event-stream', headers={
            'Cache-Control': 'no-cache',
            'X-Accel-Buffering': 'no'
        })

    # ==================== Health Check ====================

    @app.route(f'{api}/health')
    def health_check():
        """Health check endpoint."""
        try:
            db.session.execute(db.text('SELECT 1'))
            db_ok = True
        except Exception:
            db_ok = False

        redis_client = getattr(app.event_sink, 'redis', None)
        redis_status = 'not configured'
        redis_ok = True
        if redis_client is not None:
            try:
                redis_client.ping()
                redis_status = 'connected'
            except redis.RedisError:
                redis_ok = False
                redis_status = 'disconnected'

        status = 'healthy' if (redis_ok and db_ok) else 'unhealthy'
        code = 200 if status == 'healthy' else 503

        return jsonify({
            'status': status,
            'redis': redis_status,
            'database': 'connected' if db_ok else 'disconnected'
        }), code

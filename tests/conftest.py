"""
Pytest configuration and fixtures for registrar tests.
"""
import os
import sys
import pytest
from flask import g
from flask.testing import FlaskClient

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

# Set testing environment before importing app
os.environ['FLASK_ENV'] = 'testing'

from registrar.app import create_app
from registrar.models import db, Organization, User, Hackathon, Idea, HackathonRole
from shared.pubsub import EventSink
from shared.roles import HackathonRoleType, PlatformRole


class RecordingEventSink(EventSink):
    """Keeps published events in memory."""

    def __init__(self):
        self.events = []

    def publish(self, organization_id, kind, payload):
        self.events.append((organization_id, kind, payload))

    @property
    def kinds(self):
        return [kind for _, kind, _ in self.events]


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app('testing', event_sink=RecordingEventSink())

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


class IdentityHeaderClient(FlaskClient):
    """Test client that resolves the caller again on every request."""

    def open(self, *args, **kwargs):
        # The session-wide app context keeps flask_login's cached user in g
        g.pop('_login_user', None)
        return super().open(*args, **kwargs)


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    app.test_client_class = IdentityHeaderClient
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create database session for testing."""
    # Clear all tables before each test
    db.session.remove()

    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    app.event_sink.events.clear()

    yield db.session

    db.session.rollback()


@pytest.fixture
def event_sink(app, db_session):
    return app.event_sink


@pytest.fixture
def organization(db_session):
    org = Organization(name='Acme', domain='acme.test')
    db.session.add(org)
    db.session.commit()
    return org


@pytest.fixture
def other_organization(db_session):
    org = Organization(name='Globex', domain='globex.test')
    db.session.add(org)
    db.session.commit()
    return org


@pytest.fixture
def make_user(db_session, organization):
    """Factory for users; defaults to the Acme organization."""
    def _make_user(name, role=PlatformRole.USER, org=None):
        user = User(
            name=name,
            email=f'{name.lower()}@example.test',
            role=role.value,
            organization_id=(org or organization).id
        )
        db.session.add(user)
        db.session.commit()
        return user
    return _make_user


@pytest.fixture
def alice(make_user):
    return make_user('Alice')


@pytest.fixture
def bob(make_user):
    return make_user('Bob')


@pytest.fixture
def carol(make_user):
    return make_user('Carol')


@pytest.fixture
def dave(make_user):
    return make_user('Dave')


@pytest.fixture
def erin(make_user):
    return make_user('Erin')


@pytest.fixture
def admin(make_user):
    return make_user('Admin', role=PlatformRole.ADMIN)


@pytest.fixture
def organizer(make_user):
    return make_user('Olivia', role=PlatformRole.HACKATHON_CREATOR)


@pytest.fixture
def hackathon(db_session, organization, organizer):
    """Active hackathon accepting teams of 2 to 4, organized by Olivia."""
    hackathon = Hackathon(
        title='Spring Hack',
        description='Build something',
        organization_id=organization.id,
        created_by_id=organizer.id,
        is_active=True,
        minimum_team_size=2,
        maximum_team_size=4
    )
    db.session.add(hackathon)
    db.session.flush()

    db.session.add(HackathonRole(
        user_id=organizer.id,
        hackathon_id=hackathon.id,
        role=HackathonRoleType.ORGANIZER.value,
        assigned_by_id=organizer.id
    ))
    db.session.commit()
    return hackathon


@pytest.fixture
def idea(db_session, organization, alice):
    idea = Idea(
        title='Carbon tracker',
        description='Track team travel emissions',
        organization_id=organization.id,
        submitter_id=alice.id
    )
    db.session.add(idea)
    db.session.commit()
    return idea


@pytest.fixture
def other_idea(db_session, organization, carol):
    idea = Idea(
        title='Desk booking',
        description='Book a desk from chat',
        organization_id=organization.id,
        submitter_id=carol.id
    )
    db.session.add(idea)
    db.session.commit()
    return idea


@pytest.fixture
def registrations(app):
    return app.registrations


@pytest.fixture
def roles(app):
    return app.roles


def auth(user) -> dict:
    """Identity header the auth gateway would set for this user."""
    return {'X-User-Id': str(user.id)}


@pytest.fixture
def headers():
    return auth

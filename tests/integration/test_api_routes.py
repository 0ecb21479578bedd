"""
Integration tests for API routes.
Tests team registration, hackathon and role endpoints through the HTTP layer.
"""
import json

import pytest
from registrar.models import db, HackathonRole, Team
from shared.events import EventType


def _register(client, headers, hackathon, user, idea, members, name='Team Rocket'):
    return client.post(
        f'/api/v1/hackathons/{hackathon.id}/register',
        headers=headers(user),
        json={
            'teamName': name,
            'ideaId': idea.id,
            'memberIds': [m.id for m in members]
        }
    )


class TestHealthEndpoint:
    """Tests for /api/v1/health endpoint."""

    def test_health_check(self, client, db_session):
        """Health check should return 200 without a Redis sink."""
        response = client.get('/api/v1/health')
        assert response.status_code == 200

        data = json.loads(response.data)
        assert data['status'] == 'healthy'
        assert data['database'] == 'connected'
        assert data['redis'] == 'not configured'


class TestAuthentication:
    """Requests without a known caller are rejected."""

    def test_missing_header(self, client, hackathon):
        response = client.get(f'/api/v1/hackathons/{hackathon.id}')

        assert response.status_code == 401
        assert json.loads(response.data)['message'] == 'Authentication required'

    def test_unknown_user(self, client, hackathon):
        response = client.get(f'/api/v1/hackathons/{hackathon.id}', headers={'X-User-Id': '9999'})

        assert response.status_code == 401

    def test_caller_changes_between_requests(self, client, headers, hackathon, idea, alice, bob):
        """Each request is resolved from its own header."""
        _register(client, headers, hackathon, alice, idea, [bob])

        assert client.get(f'/api/v1/hackathons/{hackathon.id}/my', headers=headers(bob)).status_code == 200

        response = client.get('/api/v1/my-teams', headers=headers(alice))
        assert json.loads(response.data)['total'] == 1


class TestRegisterTeam:
    """Tests for POST /api/v1/hackathons/{id}/register."""

    def test_register(self, client, headers, hackathon, idea, alice, bob):
        response = _register(client, headers, hackathon, alice, idea, [bob])

        assert response.status_code == 201
        data = json.loads(response.data)
        assert data['message'] == 'Team registered'
        assert data['team']['name'] == 'Team Rocket'
        assert data['team']['leader']['id'] == alice.id
        assert {m['id'] for m in data['team']['members']} == {alice.id, bob.id}
        assert data['team']['idea']['id'] == idea.id

    def test_snake_case_body(self, client, headers, hackathon, idea, alice, bob):
        response = client.post(
            f'/api/v1/hackathons/{hackathon.id}/register',
            headers=headers(alice),
            json={'team_name': 'Snakes', 'idea_id': idea.id, 'member_ids': [bob.id]}
        )

        assert response.status_code == 201

    def test_missing_fields(self, client, headers, hackathon, alice):
        response = client.post(f'/api/v1/hackathons/{hackathon.id}/register',
                               headers=headers(alice), json={})

        assert response.status_code == 400
        data = json.loads(response.data)
        assert data['message'] == 'Validation failed'
        assert data['error'] == 'Team name, ideaId, and members are required.'

    @pytest.mark.parametrize('idea_id', ['', 0])
    def test_blank_idea_id(self, client, headers, hackathon, alice, bob, idea_id):
        response = client.post(f'/api/v1/hackathons/{hackathon.id}/register', headers=headers(alice),
                               json={'teamName': 'T', 'ideaId': idea_id, 'memberIds': [bob.id]})

        assert response.status_code == 400
        assert json.loads(response.data)['message'] == 'Validation failed'

    def test_invalid_team_size(self, client, headers, hackathon, idea, alice):
        response = _register(client, headers, hackathon, alice, idea, [])

        assert response.status_code == 400
        data = json.loads(response.data)
        assert data['message'] == 'Invalid team size'
        assert data['minimum_team_size'] == 2
        assert data['maximum_team_size'] == 4

    def test_already_registered(self, client, headers, hackathon, idea, alice, bob, carol):
        _register(client, headers, hackathon, alice, idea, [bob])

        response = _register(client, headers, hackathon, alice, idea, [carol], name='Again')

        assert response.status_code == 400
        assert json.loads(response.data)['message'] == 'Already registered'

    def test_closed_hackathon(self, client, headers, hackathon, idea, alice, bob):
        hackathon.is_active = False
        db.session.commit()

        response = _register(client, headers, hackathon, alice, idea, [bob])

        assert response.status_code == 400
        assert json.loads(response.data)['message'] == 'Registration closed'

    def test_unknown_hackathon(self, client, headers, idea, alice):
        response = client.post('/api/v1/hackathons/9999/register', headers=headers(alice),
                               json={'teamName': 'x', 'ideaId': idea.id, 'memberIds': []})

        assert response.status_code == 404
        assert json.loads(response.data)['message'] == 'Hackathon not found'

    def test_unknown_idea(self, client, headers, hackathon, alice, bob):
        response = client.post(f'/api/v1/hackathons/{hackathon.id}/register', headers=headers(alice),
                               json={'teamName': 'x', 'ideaId': 4242, 'memberIds': [bob.id]})

        assert response.status_code == 404
        assert json.loads(response.data)['message'] == 'Idea not found'

    def test_other_organization(self, client, headers, hackathon, idea, make_user, other_organization):
        outsider = make_user('Mallory', org=other_organization)

        response = _register(client, headers, hackathon, outsider, idea, [])

        assert response.status_code == 403

    def test_emits_event(self, client, headers, event_sink, hackathon, idea, alice, bob):
        _register(client, headers, hackathon, alice, idea, [bob])

        assert event_sink.kinds == [EventType.TEAM_CREATED]


class TestTeamQueries:
    """Tests for team listing endpoints."""

    def test_admin_listing_for_organizer(self, client, headers, hackathon, idea, organizer, alice, bob):
        _register(client, headers, hackathon, alice, idea, [bob])

        response = client.get(f'/api/v1/hackathons/{hackathon.id}/teams', headers=headers(organizer))

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['total'] == 1
        assert data['teams'][0]['name'] == 'Team Rocket'

    def test_admin_listing_forbidden_for_participant(self, client, headers, hackathon, idea, alice, bob):
        _register(client, headers, hackathon, alice, idea, [bob])

        response = client.get(f'/api/v1/hackathons/{hackathon.id}/teams', headers=headers(alice))

        assert response.status_code == 403

    def test_public_listing(self, client, headers, hackathon, idea, alice, bob, carol):
        _register(client, headers, hackathon, alice, idea, [bob])

        response = client.get(f'/api/v1/hackathons/{hackathon.id}/teams/public', headers=headers(carol))

        assert response.status_code == 200
        assert json.loads(response.data)['total'] == 1

    def test_my_team(self, client, headers, hackathon, idea, alice, bob):
        _register(client, headers, hackathon, alice, idea, [bob])

        response = client.get(f'/api/v1/hackathons/{hackathon.id}/my', headers=headers(bob))

        assert response.status_code == 200
        assert json.loads(response.data)['team']['leader']['id'] == alice.id

    def test_my_team_not_found(self, client, headers, hackathon, alice):
        response = client.get(f'/api/v1/hackathons/{hackathon.id}/my', headers=headers(alice))

        assert response.status_code == 404

    def test_my_teams_empty(self, client, headers, alice):
        response = client.get('/api/v1/my-teams', headers=headers(alice))

        assert response.status_code == 200
        assert json.loads(response.data) == {'teams': [], 'total': 0}


class TestUpdateAndWithdraw:
    """Tests for PUT and DELETE /api/v1/hackathons/{id}/teams/{team_id}."""

    def test_update(self, client, headers, hackathon, idea, other_idea, alice, bob, carol):
        team_id = json.loads(_register(client, headers, hackathon, alice, idea, [bob]).data)['team']['id']

        response = client.put(
            f'/api/v1/hackathons/{hackathon.id}/teams/{team_id}',
            headers=headers(alice),
            json={'teamName': 'Renamed', 'ideaId': other_idea.id, 'memberIds': [carol.id]}
        )

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['message'] == 'Team updated'
        assert data['team']['name'] == 'Renamed'
        assert {m['id'] for m in data['team']['members']} == {alice.id, carol.id}

    def test_update_by_member_forbidden(self, client, headers, hackathon, idea, alice, bob):
        team_id = json.loads(_register(client, headers, hackathon, alice, idea, [bob]).data)['team']['id']

        response = client.put(
            f'/api/v1/hackathons/{hackathon.id}/teams/{team_id}',
            headers=headers(bob),
            json={'teamName': 'Coup', 'ideaId': idea.id, 'memberIds': [alice.id]}
        )

        assert response.status_code == 403

    def test_withdraw(self, client, headers, event_sink, hackathon, idea, alice, bob):
        team_id = json.loads(_register(client, headers, hackathon, alice, idea, [bob]).data)['team']['id']

        response = client.delete(f'/api/v1/hackathons/{hackathon.id}/teams/{team_id}',
                                 headers=headers(bob))

        assert response.status_code == 200
        assert json.loads(response.data)['message'] == 'Team withdrawn'
        assert db.session.get(Team, team_id) is None
        assert HackathonRole.role_for(alice.id, hackathon.id) is None
        assert event_sink.kinds == [EventType.TEAM_CREATED, EventType.TEAM_DELETED]

    def test_withdraw_by_outsider_forbidden(self, client, headers, hackathon, idea, alice, bob, carol):
        team_id = json.loads(_register(client, headers, hackathon, alice, idea, [bob]).data)['team']['id']

        response = client.delete(f'/api/v1/hackathons/{hackathon.id}/teams/{team_id}',
                                 headers=headers(carol))

        assert response.status_code == 403

    def test_withdraw_unknown_team(self, client, headers, hackathon, alice):
        response = client.delete(f'/api/v1/hackathons/{hackathon.id}/teams/9999', headers=headers(alice))

        assert response.status_code == 404


class TestHackathonEndpoints:
    """Tests for hackathon endpoints."""

    def test_create(self, client, headers, organizer):
        response = client.post('/api/v1/hackathons', headers=headers(organizer), json={
            'title': 'Summer Hack',
            'description': 'Hot ideas',
            'minimumTeamSize': 2,
            'maximumTeamSize': 6,
            'rounds': [{'name': 'Kickoff'}]
        })

        assert response.status_code == 201
        data = json.loads(response.data)
        assert data['hackathon']['title'] == 'Summer Hack'
        assert data['hackathon']['maximum_team_size'] == 6
        assert data['hackathon']['rounds'][0]['name'] == 'Kickoff'

    def test_create_forbidden(self, client, headers, alice):
        response = client.post('/api/v1/hackathons', headers=headers(alice),
                               json={'title': 'Nope', 'description': 'Nope'})

        assert response.status_code == 403

    def test_create_invalid_bounds(self, client, headers, organizer):
        response = client.post('/api/v1/hackathons', headers=headers(organizer), json={
            'title': 'Bad', 'description': 'Bad', 'minimum_team_size': 5, 'maximum_team_size': 2
        })

        assert response.status_code == 400

    def test_list(self, client, headers, hackathon, alice):
        response = client.get('/api/v1/hackathons?active=true', headers=headers(alice))

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['total'] == 1
        assert data['hackathons'][0]['id'] == hackathon.id

    def test_get(self, client, headers, hackathon, alice):
        response = client.get(f'/api/v1/hackathons/{hackathon.id}', headers=headers(alice))

        assert response.status_code == 200
        assert json.loads(response.data)['hackathon']['minimum_team_size'] == 2

    def test_get_not_found(self, client, headers, alice):
        response = client.get('/api/v1/hackathons/9999', headers=headers(alice))

        assert response.status_code == 404

    def test_close_then_register(self, client, headers, hackathon, idea, organizer, alice, bob):
        response = client.post(f'/api/v1/hackathons/{hackathon.id}/close', headers=headers(organizer))
        assert response.status_code == 200
        assert json.loads(response.data)['hackathon']['is_active'] is False

        response = _register(client, headers, hackathon, alice, idea, [bob])
        assert response.status_code == 400

    def test_open_forbidden(self, client, headers, hackathon, alice):
        response = client.post(f'/api/v1/hackathons/{hackathon.id}/open', headers=headers(alice))

        assert response.status_code == 403

    def test_update(self, client, headers, hackathon, organizer):
        response = client.put(f'/api/v1/hackathons/{hackathon.id}', headers=headers(organizer), json={
            'title': 'Spring Hack 2',
            'maximumTeamSize': 6,
            'rounds': [{'name': 'Ideation'}, {'name': 'Demo day'}]
        })

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['message'] == 'Hackathon updated'
        assert data['hackathon']['title'] == 'Spring Hack 2'
        assert data['hackathon']['minimum_team_size'] == 2
        assert data['hackathon']['maximum_team_size'] == 6
        assert [r['name'] for r in data['hackathon']['rounds']] == ['Ideation', 'Demo day']

    def test_update_forbidden(self, client, headers, hackathon, alice):
        response = client.put(f'/api/v1/hackathons/{hackathon.id}', headers=headers(alice),
                              json={'title': 'Mine'})

        assert response.status_code == 403

    def test_update_invalid_bounds(self, client, headers, hackathon, organizer):
        response = client.put(f'/api/v1/hackathons/{hackathon.id}', headers=headers(organizer),
                              json={'minimum_team_size': 5})

        assert response.status_code == 400


class TestIdeaEndpoints:
    """Tests for idea endpoints."""

    def test_submit(self, client, headers, alice):
        response = client.post('/api/v1/ideas/submit', headers=headers(alice), json={
            'title': 'Mentor matcher',
            'description': 'Pair juniors with mentors',
            'isPublic': False
        })

        assert response.status_code == 201
        data = json.loads(response.data)
        assert data['message'] == 'Idea submitted'
        assert data['idea']['is_public'] is False
        assert data['idea']['submitter']['id'] == alice.id

    def test_submit_missing_fields(self, client, headers, alice):
        response = client.post('/api/v1/ideas/submit', headers=headers(alice), json={'title': 'Only'})

        assert response.status_code == 400
        assert json.loads(response.data)['message'] == 'Validation failed'

    def test_public_and_mine(self, client, headers, idea, alice, bob):
        client.post('/api/v1/ideas/submit', headers=headers(alice),
                    json={'title': 'Private', 'description': 'Hush', 'is_public': False})

        public = json.loads(client.get('/api/v1/ideas/public-ideas', headers=headers(bob)).data)
        mine = json.loads(client.get('/api/v1/ideas/my', headers=headers(alice)).data)

        assert [i['title'] for i in public['ideas']] == ['Carbon tracker']
        assert mine['total'] == 2

    def test_update(self, client, headers, idea, alice):
        response = client.put(f'/api/v1/ideas/{idea.id}', headers=headers(alice), json={
            'title': 'Carbon tracker 2', 'description': 'Now with trains'
        })

        assert response.status_code == 200
        assert json.loads(response.data)['idea']['title'] == 'Carbon tracker 2'

    def test_update_by_other_user_forbidden(self, client, headers, idea, bob):
        response = client.put(f'/api/v1/ideas/{idea.id}', headers=headers(bob),
                              json={'title': 'Mine', 'description': 'Mine'})

        assert response.status_code == 403

    def test_delete(self, client, headers, idea, alice):
        response = client.delete(f'/api/v1/ideas/{idea.id}', headers=headers(alice))

        assert response.status_code == 200
        assert json.loads(response.data)['message'] == 'Idea deleted'

    def test_delete_idea_in_use(self, client, headers, hackathon, idea, alice, bob):
        _register(client, headers, hackathon, alice, idea, [bob])

        response = client.delete(f'/api/v1/ideas/{idea.id}', headers=headers(alice))

        assert response.status_code == 400
        assert json.loads(response.data)['message'] == 'Idea in use'

    def test_delete_unknown(self, client, headers, alice):
        response = client.delete('/api/v1/ideas/9999', headers=headers(alice))

        assert response.status_code == 404


class TestRoleEndpoints:
    """Tests for hackathon role endpoints."""

    def test_assign_and_update(self, client, headers, hackathon, organizer, alice):
        url = f'/api/v1/hackathons/{hackathon.id}/roles'

        response = client.post(url, headers=headers(organizer), json={'userId': alice.id, 'role': 'judge'})
        assert response.status_code == 201
        assert json.loads(response.data)['role']['role'] == 'judge'

        response = client.post(url, headers=headers(organizer), json={'user_id': alice.id, 'role': 'mentor'})
        assert response.status_code == 200
        assert json.loads(response.data)['message'] == 'Role updated'

    def test_assign_invalid_role(self, client, headers, hackathon, organizer, alice):
        response = client.post(f'/api/v1/hackathons/{hackathon.id}/roles', headers=headers(organizer),
                               json={'userId': alice.id, 'role': 'king'})

        assert response.status_code == 400

    def test_assign_forbidden(self, client, headers, hackathon, alice, bob):
        response = client.post(f'/api/v1/hackathons/{hackathon.id}/roles', headers=headers(alice),
                               json={'userId': bob.id, 'role': 'judge'})

        assert response.status_code == 403

    def test_remove(self, client, headers, roles, hackathon, organizer, alice):
        roles.assign_role(hackathon.id, organizer, alice.id, 'judge')

        response = client.delete(f'/api/v1/hackathons/{hackathon.id}/roles/{alice.id}',
                                 headers=headers(organizer))

        assert response.status_code == 200
        assert json.loads(response.data)['role'] == 'judge'

    def test_remove_missing(self, client, headers, hackathon, organizer, alice):
        response = client.delete(f'/api/v1/hackathons/{hackathon.id}/roles/{alice.id}',
                                 headers=headers(organizer))

        assert response.status_code == 404

    def test_members(self, client, headers, hackathon, idea, organizer, alice, bob):
        _register(client, headers, hackathon, alice, idea, [bob])

        response = client.get(f'/api/v1/hackathons/{hackathon.id}/members', headers=headers(organizer))

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['total'] == 3
        assert len(data['members_by_role']['participant']) == 2
        assert len(data['members_by_role']['organizer']) == 1

    def test_members_forbidden_without_role(self, client, headers, hackathon, carol):
        response = client.get(f'/api/v1/hackathons/{hackathon.id}/members', headers=headers(carol))

        assert response.status_code == 403

    @pytest.mark.parametrize('who,has_role,role', [
        ('organizer', True, 'organizer'),
        ('alice', False, None),
    ])
    def test_my_role(self, client, headers, hackathon, organizer, alice, who, has_role, role):
        user = {'organizer': organizer, 'alice': alice}[who]

        response = client.get(f'/api/v1/hackathons/{hackathon.id}/my-role', headers=headers(user))

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['has_role'] is has_role
        assert data['role'] == role


class TestErrorHandling:
    """Unexpected failures are answered as JSON."""

    def test_unknown_route(self, client, db_session):
        response = client.get('/api/v1/nowhere')

        assert response.status_code == 404
        assert 'message' in json.loads(response.data)

    def test_internal_error(self, app, client, headers, hackathon, alice, mocker):
        mocker.patch.object(app.registrations, 'get_my_teams', side_effect=RuntimeError('db gone'))

        response = client.get('/api/v1/my-teams', headers=headers(alice))

        assert response.status_code == 500
        data = json.loads(response.data)
        assert data == {'message': 'Internal server error', 'error': 'db gone'}

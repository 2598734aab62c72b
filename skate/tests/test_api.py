"""
Tests for the REST API.

Tests:
- Game lifecycle over HTTP
- Error code to status mapping
- Request validation
- Battle voting endpoints
"""

import pytest
from fastapi.testclient import TestClient

from ..api.app import create_app, status_for
from ..engine_core.event import ErrorCode


@pytest.fixture
def client(game_service, battle_service, config):
    return TestClient(create_app(game_service=game_service, battle_service=battle_service, config=config))


@pytest.fixture
def game_id(client):
    response = client.post(
        "/api/v1/games",
        json={"event_id": "create-1", "spot_id": "spot-1", "creator_id": "alice"},
    )
    assert response.status_code == 200
    gid = response.json()["game"]["game_id"]
    client.post(f"/api/v1/games/{gid}/join", json={"event_id": "join-bob", "player_id": "bob"})
    return gid


class TestSystem:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_root(self, client):
        assert client.get("/").json()["docs"] == "/api/docs"


class TestGameEndpoints:
    def test_create_is_idempotent(self, client):
        body = {"event_id": "create-1", "spot_id": "spot-1", "creator_id": "alice"}
        first = client.post("/api/v1/games", json=body).json()
        second = client.post("/api/v1/games", json=body).json()
        assert second["already_initialized"]
        assert second["game"]["game_id"] == first["game"]["game_id"]

    def test_join_starts_game(self, client, game_id):
        game = client.get(f"/api/v1/games/{game_id}").json()
        assert game["status"] == "active"
        assert game["current_player_id"] == "alice"
        assert game["current_action"] == "set"

    def test_set_and_pass(self, client, game_id):
        set_response = client.post(
            f"/api/v1/games/{game_id}/tricks",
            json={"event_id": "trick-1", "player_id": "alice", "trick_name": "kickflip"},
        )
        assert set_response.status_code == 200
        assert set_response.json()["game"]["current_player_id"] == "bob"

        pass_response = client.post(
            f"/api/v1/games/{game_id}/pass", json={"event_id": "pass-1", "player_id": "bob"}
        )
        body = pass_response.json()
        players = {p["player_id"]: p for p in body["game"]["players"]}
        assert players["bob"]["letters"] == "S"
        assert body["details"]["letters"] == "S"

    def test_retry_reports_already_processed(self, client, game_id):
        body = {"event_id": "trick-1", "player_id": "alice", "trick_name": "kickflip"}
        client.post(f"/api/v1/games/{game_id}/tricks", json=body)
        again = client.post(f"/api/v1/games/{game_id}/tricks", json=body)
        assert again.status_code == 200
        assert again.json()["already_processed"]

    def test_not_your_turn_is_403(self, client, game_id):
        response = client.post(
            f"/api/v1/games/{game_id}/tricks",
            json={"event_id": "trick-1", "player_id": "bob", "trick_name": "kickflip"},
        )
        assert response.status_code == 403
        assert response.json()["error_code"] == "NOT_YOUR_TURN"

    def test_wrong_phase_is_409(self, client, game_id):
        response = client.post(
            f"/api/v1/games/{game_id}/pass", json={"event_id": "pass-1", "player_id": "alice"}
        )
        assert response.status_code == 409
        assert response.json()["error_code"] == "WRONG_PHASE"

    def test_missing_game_is_404(self, client):
        assert client.get("/api/v1/games/nope").status_code == 404
        response = client.post("/api/v1/games/nope/join", json={"player_id": "bob"})
        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"

    def test_invalid_body_is_422(self, client, game_id):
        response = client.post(
            f"/api/v1/games/{game_id}/tricks", json={"player_id": "alice", "trick_name": ""}
        )
        assert response.status_code == 422

    def test_event_id_generated_when_missing(self, client, game_id):
        response = client.post(
            f"/api/v1/games/{game_id}/forfeit", json={"player_id": "bob"}
        )
        body = response.json()
        assert body["event_id"].startswith(f"forfeit-{game_id}-bob-")
        assert body["game"]["status"] == "forfeited"
        assert body["game"]["winner_id"] == "alice"

    def test_disconnect_reconnect(self, client, game_id):
        client.post(f"/api/v1/games/{game_id}/disconnect", json={"event_id": "dc-1", "player_id": "bob"})
        assert client.get(f"/api/v1/games/{game_id}").json()["status"] == "paused"
        client.post(f"/api/v1/games/{game_id}/reconnect", json={"event_id": "rc-1", "player_id": "bob"})
        assert client.get(f"/api/v1/games/{game_id}").json()["status"] == "active"

    def test_delete(self, client, game_id):
        assert client.delete(f"/api/v1/games/{game_id}").json()["success"]
        assert client.delete(f"/api/v1/games/{game_id}").status_code == 404

    def test_judged_game_with_dispute(self, client):
        created = client.post(
            "/api/v1/games",
            json={"event_id": "create-j", "spot_id": "s", "creator_id": "alice", "judging": "setter_judged"},
        ).json()
        gid = created["game"]["game_id"]
        client.post(f"/api/v1/games/{gid}/join", json={"event_id": "j", "player_id": "bob"})
        client.post(
            f"/api/v1/games/{gid}/tricks",
            json={"event_id": "s1", "player_id": "alice", "trick_name": "nollie", "video_url": "https://v/1"},
        )
        response = client.post(
            f"/api/v1/games/{gid}/tricks",
            json={"event_id": "r1", "player_id": "bob", "trick_name": "nollie", "video_url": "https://v/2"},
        ).json()
        assert response["game"]["current_action"] == "judge"
        turn_id = response["details"]["turn_id"]

        judged = client.post(
            f"/api/v1/games/{gid}/judge",
            json={"event_id": "jd1", "player_id": "alice", "turn_id": turn_id, "result": "missed"},
        ).json()
        assert judged["details"]["letters"] == "S"

        disputed = client.post(
            f"/api/v1/games/{gid}/disputes",
            json={"event_id": "d1", "player_id": "bob", "turn_id": turn_id},
        ).json()
        dispute_id = disputed["details"]["dispute_id"]

        resolved = client.post(
            f"/api/v1/games/{gid}/disputes/{dispute_id}/resolve",
            json={"event_id": "rs1", "player_id": "alice", "final_result": "landed"},
        ).json()
        assert resolved["game"]["current_player_id"] == "bob"
        assert resolved["game"]["disputes"][0]["final_result"] == "landed"


@pytest.fixture
def disputed(client):
    """Judged game where alice ruled bob's response missed and bob disputed it."""
    gid = client.post(
        "/api/v1/games",
        json={"event_id": "create-d", "spot_id": "s", "creator_id": "alice", "judging": "setter_judged"},
    ).json()["game"]["game_id"]
    client.post(f"/api/v1/games/{gid}/join", json={"event_id": "j", "player_id": "bob"})
    client.post(
        f"/api/v1/games/{gid}/tricks",
        json={"event_id": "s1", "player_id": "alice", "trick_name": "nollie", "video_url": "https://v/1"},
    )
    client.post(
        f"/api/v1/games/{gid}/tricks",
        json={"event_id": "r1", "player_id": "bob", "trick_name": "nollie", "video_url": "https://v/2"},
    )
    client.post(
        f"/api/v1/games/{gid}/judge",
        json={"event_id": "jd1", "player_id": "alice", "turn_id": 2, "result": "missed"},
    )
    dispute_id = client.post(
        f"/api/v1/games/{gid}/disputes",
        json={"event_id": "d1", "player_id": "bob", "turn_id": 2},
    ).json()["details"]["dispute_id"]
    return gid, dispute_id


class TestDisputeAuthority:
    def test_player_cannot_claim_admin(self, client, disputed):
        gid, dispute_id = disputed
        response = client.post(
            f"/api/v1/games/{gid}/disputes/{dispute_id}/resolve",
            json={"event_id": "rs1", "player_id": "bob", "final_result": "landed", "admin": True},
        )
        assert response.status_code == 403
        assert response.json()["error_code"] == "NOT_JUDGE"
        game = client.get(f"/api/v1/games/{gid}").json()
        assert {p["player_id"]: p["letters"] for p in game["players"]}["bob"] == "S"

    def test_moderator_route(self, client, disputed):
        gid, dispute_id = disputed
        response = client.post(
            f"/api/v1/admin/games/{gid}/disputes/{dispute_id}/resolve",
            json={"event_id": "rs1", "admin_id": "moderator", "final_result": "landed"},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["game"]["current_player_id"] == "bob"
        assert body["game"]["disputes"][0]["resolved_by"] == "moderator"


class TestBattleEndpoints:
    def test_vote_flow(self, client):
        opened = client.post(
            "/api/v1/battles/battle-1/voting",
            json={"event_id": "init-1", "creator_id": "C", "opponent_id": "O"},
        )
        assert opened.status_code == 200
        assert opened.json()["battle"]["status"] == "voting"

        client.post("/api/v1/battles/battle-1/votes", json={"event_id": "v1", "player_id": "C", "vote": "clean"})
        result = client.post(
            "/api/v1/battles/battle-1/votes", json={"event_id": "v2", "player_id": "O", "vote": "sketch"}
        ).json()
        assert result["battle_complete"]
        assert result["winner_id"] == "O"
        assert result["final_score"] == {"C": 0, "O": 1}

        state = client.get("/api/v1/battles/battle-1").json()
        assert state["votes"] == {"C": "clean", "O": "sketch"}

    def test_outsider_vote_is_403(self, client):
        client.post(
            "/api/v1/battles/battle-1/voting",
            json={"event_id": "init-1", "creator_id": "C", "opponent_id": "O"},
        )
        response = client.post(
            "/api/v1/battles/battle-1/votes", json={"event_id": "v1", "player_id": "X", "vote": "clean"}
        )
        assert response.status_code == 403
        assert response.json()["error_code"] == "NOT_A_PARTICIPANT"

    def test_same_participants_is_422(self, client):
        response = client.post(
            "/api/v1/battles/battle-1/voting",
            json={"event_id": "init-1", "creator_id": "C", "opponent_id": "C"},
        )
        assert response.status_code == 422
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    def test_unknown_vote_value(self, client):
        response = client.post(
            "/api/v1/battles/battle-1/votes", json={"player_id": "C", "vote": "meh"}
        )
        assert response.status_code == 422


class TestSweepEndpoint:
    def test_sweep_applies_timeouts(self, client, game_id, clock):
        clock.advance(61)
        body = client.post("/api/v1/admin/sweep").json()
        assert body["applied"] == 1
        assert body["actions"][0]["action"] == "turn_timeout_forfeit"


class TestStatusMapping:
    @pytest.mark.parametrize("code,status", [
        (ErrorCode.NOT_FOUND, 404),
        (ErrorCode.NOT_YOUR_TURN, 403),
        (ErrorCode.DEADLINE_PASSED, 409),
        (ErrorCode.NO_ELIGIBLE_PLAYER, 400),
    ])
    def test_status_for(self, code, status):
        assert status_for(code) == status

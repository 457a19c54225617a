"""
HTTP tests for the bracket endpoints.

Covers the status code mapping of service errors (422 validation, 409
state or version conflict, 404 missing, 403 forbidden) and the main
generation and scoring flows end to end.
"""

from sqlmodel import select

from bracket_engine.models.audit_event import AuditEvent

CATEGORY = 1
STRAIGHT_SETS = [{"team1": 6, "team2": 2}, {"team1": 6, "team2": 3}]


def _bracket_url(tournament_id: int, suffix: str = "") -> str:
    return f"/api/tournaments/{tournament_id}/categories/{CATEGORY}/bracket{suffix}"


def _generate(client, tournament_id, team_ids):
    resp = client.post(_bracket_url(tournament_id, "/generate"), json={"team_ids": team_ids})
    assert resp.status_code == 200, resp.text
    return resp.json()


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


def test_create_and_list_brackets(client, tournament):
    resp = client.post(_bracket_url(tournament.id), json={"format": "groups_knockout"})
    assert resp.status_code == 201
    assert resp.json()["format"] == "groups_knockout"
    assert resp.json()["status"] == "draft"

    listed = client.get(f"/api/tournaments/{tournament.id}/brackets")
    assert listed.status_code == 200
    assert [b["category_id"] for b in listed.json()] == [CATEGORY]


def test_create_bracket_rejects_unknown_format(client, tournament):
    resp = client.post(_bracket_url(tournament.id), json={"format": "ladder"})
    assert resp.status_code == 422
    assert "ladder" in resp.json()["detail"]


def test_missing_bracket_is_404(client, tournament):
    assert client.get(_bracket_url(tournament.id)).status_code == 404
    assert client.get(_bracket_url(tournament.id, "/standings")).status_code == 404


def test_generate_knockout(client, tournament, make_teams):
    team_ids = make_teams(6)

    body = _generate(client, tournament.id, team_ids)

    assert body["bracket"]["format"] == "knockout"
    assert len(body["matches"]) == 7
    assert sum(1 for m in body["matches"] if m["is_bye"]) == 2

    fetched = client.get(_bracket_url(tournament.id))
    assert fetched.status_code == 200
    assert [m["id"] for m in fetched.json()["matches"]] == [m["id"] for m in body["matches"]]


def test_generate_knockout_validation(client, tournament, make_teams):
    resp = client.post(_bracket_url(tournament.id, "/generate"), json={"team_ids": make_teams(1)})
    assert resp.status_code == 422
    assert resp.json()["detail"] == "At least 2 teams required to generate bracket"


def test_score_and_version_conflict(client, tournament, make_teams):
    body = _generate(client, tournament.id, make_teams(4))
    semi = body["matches"][0]

    resp = client.put(
        f"/api/matches/{semi['id']}/score",
        json={"set_scores": STRAIGHT_SETS, "expected_version": 1},
        headers={"X-Actor-Id": "org-7"},
    )
    assert resp.status_code == 200, resp.text
    result = resp.json()
    assert result["match"]["status"] == "completed"
    assert result["match"]["version"] == 2
    assert result["next_match"]["team1_id"] == semi["team1_id"]

    stale = client.put(
        f"/api/matches/{semi['id']}/score",
        json={"set_scores": STRAIGHT_SETS, "expected_version": 1},
    )
    assert stale.status_code == 409


def test_score_actor_is_audited(client, session, tournament, make_teams):
    semi = _generate(client, tournament.id, make_teams(4))["matches"][0]

    client.put(f"/api/matches/{semi['id']}/score", json={"set_scores": STRAIGHT_SETS}, headers={"X-Actor-Id": "org-7"})

    events = session.exec(
        select(AuditEvent).where(AuditEvent.entity_type == "match", AuditEvent.entity_id == str(semi["id"]))
    ).all()
    assert [(e.action, e.actor_id) for e in events] == [("update_score", "org-7")]


def test_invalid_score_is_422(client, tournament, make_teams):
    semi = _generate(client, tournament.id, make_teams(4))["matches"][0]

    resp = client.put(f"/api/matches/{semi['id']}/score", json={"set_scores": [{"team1": 6, "team2": 5}]})

    assert resp.status_code == 422


def test_player_score_forbidden_for_outsider(client, tournament, make_teams):
    semi = _generate(client, tournament.id, make_teams(4))["matches"][0]

    resp = client.post(
        f"/api/matches/{semi['id']}/player-score",
        json={"user_id": "someone-else", "set_scores": STRAIGHT_SETS},
    )

    assert resp.status_code == 403


def test_player_score_by_team_member(client, tournament, make_teams):
    semi = _generate(client, tournament.id, make_teams(4))["matches"][0]

    resp = client.post(
        f"/api/matches/{semi['id']}/player-score",
        json={"user_id": "p1a", "set_scores": STRAIGHT_SETS},
    )

    assert resp.status_code == 200, resp.text
    assert resp.json()["match"]["winner_team"] == 1


def test_reset_score(client, tournament, make_teams):
    semi = _generate(client, tournament.id, make_teams(4))["matches"][0]
    client.put(f"/api/matches/{semi['id']}/score", json={"set_scores": STRAIGHT_SETS})

    stale = client.delete(f"/api/matches/{semi['id']}/score", params={"expected_version": 1})
    assert stale.status_code == 409

    resp = client.delete(f"/api/matches/{semi['id']}/score", params={"expected_version": 2})
    assert resp.status_code == 200
    assert resp.json()["status"] == "pending"
    assert resp.json()["winner_team"] is None


def test_match_status(client, tournament, make_teams):
    semi = _generate(client, tournament.id, make_teams(4))["matches"][0]

    resp = client.patch(f"/api/matches/{semi['id']}/status", json={"status": "in_progress"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "in_progress"

    back = client.patch(f"/api/matches/{semi['id']}/status", json={"status": "pending"})
    assert back.status_code == 409

    direct = client.patch(f"/api/matches/{semi['id']}/status", json={"status": "completed"})
    assert direct.status_code == 422

    assert client.patch("/api/matches/9999/status", json={"status": "scheduled"}).status_code == 404


def test_advance_winner(client, tournament, make_teams):
    semi = _generate(client, tournament.id, make_teams(4))["matches"][0]

    assert client.post(f"/api/matches/{semi['id']}/advance").status_code == 409

    client.put(f"/api/matches/{semi['id']}/score", json={"set_scores": STRAIGHT_SETS})
    resp = client.post(f"/api/matches/{semi['id']}/advance")
    assert resp.status_code == 200
    assert resp.json()["winner_team"] == 1


def test_publish_flow(client, tournament, make_teams):
    _generate(client, tournament.id, make_teams(4))

    published = client.post(_bracket_url(tournament.id, "/publish"))
    assert published.status_code == 200
    assert published.json()["status"] == "published"
    assert client.post(_bracket_url(tournament.id, "/publish")).status_code == 409

    unpublished = client.post(_bracket_url(tournament.id, "/unpublish"))
    assert unpublished.json()["status"] == "in_progress"


def test_resolve_byes_endpoint(client, tournament, make_teams):
    _generate(client, tournament.id, make_teams(5))

    resp = client.post(_bracket_url(tournament.id, "/resolve-byes"))

    assert resp.status_code == 200
    assert resp.json() == {"resolved": 0}


def test_delete_bracket(client, tournament, make_teams):
    body = _generate(client, tournament.id, make_teams(4))

    resp = client.delete(f"/api/brackets/{body['bracket']['id']}")

    assert resp.status_code == 204
    assert client.get(_bracket_url(tournament.id)).status_code == 404
    assert client.delete(f"/api/brackets/{body['bracket']['id']}").status_code == 404


def test_group_stage_to_knockout(client, tournament, make_teams):
    team_ids = make_teams(8)

    created = client.post(_bracket_url(tournament.id, "/groups/auto"), json={"team_ids": team_ids})
    assert created.status_code == 200, created.text
    matches = created.json()["matches"]
    assert len(matches) == 12

    early = client.post(_bracket_url(tournament.id, "/knockout"))
    assert early.status_code == 409

    for match in matches:
        resp = client.put(f"/api/matches/{match['id']}/score", json={"set_scores": STRAIGHT_SETS})
        assert resp.status_code == 200

    knockout = client.post(_bracket_url(tournament.id, "/knockout"))
    assert knockout.status_code == 200, knockout.text
    assert len([m for m in knockout.json()["matches"] if m["group_number"] is None]) == 3

    state = client.get(_bracket_url(tournament.id, "/groups")).json()
    assert state["phase"] == "knockout"
    assert [g["group_name"] for g in state["groups"]] == ["Group A", "Group B"]

    deleted = client.delete(_bracket_url(tournament.id, "/knockout"))
    assert deleted.status_code == 200
    assert deleted.json() == {"deleted_matches": 3}


def test_manual_groups_and_swap(client, tournament, make_teams):
    t = make_teams(6)
    payload = {
        "groups": [
            {"group_number": 1, "team_ids": t[:3]},
            {"group_number": 2, "team_ids": t[3:]},
        ],
        "config": {"group_count": 2, "teams_per_group": 3},
    }

    resp = client.post(_bracket_url(tournament.id, "/groups"), json=payload)
    assert resp.status_code == 200, resp.text

    swapped = client.post(_bracket_url(tournament.id, "/groups/swap"), json={"team1_id": t[0], "team2_id": t[3]})
    assert swapped.status_code == 200
    groups = swapped.json()["groups"]
    assert groups[0]["team_ids"][0] == t[3]
    assert groups[1]["team_ids"][0] == t[0]

    same = client.post(_bracket_url(tournament.id, "/groups/swap"), json={"team1_id": t[1], "team2_id": t[2]})
    assert same.status_code == 422


def test_withdraw_and_standings(client, tournament, make_teams):
    t = make_teams(4)
    _generate(client, tournament.id, t)

    resp = client.post(_bracket_url(tournament.id, "/withdraw"), json={"team_id": t[0], "reason": "injury"})

    assert resp.status_code == 200
    assert resp.json()["message"] == "Team withdrawn. 1 match(es) forfeited."

    standings = client.get(_bracket_url(tournament.id, "/standings"))
    assert standings.status_code == 200
    assert {s["team_id"] for s in standings.json()} == {t[0], t[3]}

    calculated = client.post(_bracket_url(tournament.id, "/standings/calculate"))
    assert calculated.status_code == 200
    assert calculated.json() == standings.json()

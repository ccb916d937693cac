"""
Tests — HTTP API (clarity + workspace blueprints).

Covers:
    - health check
    - extraction input validation and error envelope
    - session create / get / list / compare / back / next / reset
    - apply twice → 409, dismiss, session settles to done
    - handoff SLA proposals created on a live comparison and applied
    - comments and approvals
    - overlap and handoff analysis, with and without narrative
    - inline edit endpoints
"""

from roleclarity.models import db as _db
from roleclarity.models.clarity import ClarityProposal
from roleclarity.models.workspace import Handoff, Role
from tests.conftest import make_activity, make_handoff, make_progression, make_stage

JD = "Account Manager owning client pricing, renewals and the quarterly account review."
HEADERS = {"X-User-Id": "u1", "X-User-Email": "u1@example.com"}


def _create_session(client, ws_id, **body):
    res = client.post(f"/api/v1/workspaces/{ws_id}/clarity/sessions", json={"text": JD, **body}, headers=HEADERS)
    assert res.status_code == 201, res.get_json()
    return res.get_json()["session"]


def _compared_session(client, pricing_workspace):
    session = _create_session(client, pricing_workspace["workspace"].id)
    res = client.post(f"/api/v1/clarity/sessions/{session['id']}/compare",
                      json={"roleId": pricing_workspace["manager"].id}, headers=HEADERS)
    assert res.status_code == 200, res.get_json()
    return res.get_json()


class TestHealth:

    def test_health(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json()["status"] == "ok"
        assert "X-Request-ID" in res.headers

    def test_unknown_route(self, client):
        res = client.get("/api/v1/nope")
        assert res.status_code == 404
        assert res.get_json()["path"] == "/api/v1/nope"


class TestExtract:

    def test_extract(self, client, workspace, fake_backend):
        res = client.post(f"/api/v1/workspaces/{workspace.id}/clarity/extract", json={"text": JD})
        assert res.status_code == 200
        assert res.get_json()["extraction"]["title"] == "Account Manager"
        assert fake_backend.calls == ["role_extraction"]

    def test_too_short(self, client, workspace, fake_backend):
        res = client.post(f"/api/v1/workspaces/{workspace.id}/clarity/extract", json={"text": "short"})
        assert res.status_code == 400
        body = res.get_json()
        assert body["code"] == "ERR_INPUT_TOO_SHORT"
        assert body["details"]["retryable"] is True
        assert fake_backend.calls == []

    def test_missing_input(self, client, workspace):
        res = client.post(f"/api/v1/workspaces/{workspace.id}/clarity/extract", json={})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_invalid_url(self, client, workspace, fake_backend):
        res = client.post(f"/api/v1/workspaces/{workspace.id}/clarity/extract", json={"url": "ftp://files/jd"})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_INVALID_URL"

    def test_unknown_workspace(self, client):
        res = client.post("/api/v1/workspaces/999/clarity/extract", json={"text": JD})
        assert res.status_code == 404


class TestSessions:

    def test_create(self, client, workspace, fake_backend):
        session = _create_session(client, workspace.id)
        assert session["step"] == "review-extraction"
        assert session["user_id"] == "u1"
        assert session["user_email"] == "u1@example.com"
        assert session["extraction"]["title"] == "Account Manager"

    def test_create_backend_failure(self, client, workspace, fake_backend):
        fake_backend.fail = "upstream"
        res = client.post(f"/api/v1/workspaces/{workspace.id}/clarity/sessions", json={"text": JD})
        assert res.status_code == 502
        body = res.get_json()
        assert body["code"] == "ERR_EXTRACTION_FAILED"
        session = client.get(f"/api/v1/clarity/sessions/{body['details']['session_id']}").get_json()
        assert session["step"] == "import"

    def test_get_unknown(self, client):
        res = client.get("/api/v1/clarity/sessions/4242")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_SESSION_NOT_FOUND"

    def test_list_mine(self, client, workspace, fake_backend):
        _create_session(client, workspace.id)
        client.post(f"/api/v1/workspaces/{workspace.id}/clarity/sessions", json={"text": JD},
                    headers={"X-User-Id": "u2"})
        everyone = client.get(f"/api/v1/workspaces/{workspace.id}/clarity/sessions").get_json()
        mine = client.get(f"/api/v1/workspaces/{workspace.id}/clarity/sessions?mine=1", headers=HEADERS).get_json()
        assert everyone["total"] == 2
        assert [s["user_id"] for s in mine["items"]] == ["u1"]

    def test_next_from_review_is_invalid(self, client, workspace, fake_backend):
        session = _create_session(client, workspace.id)
        res = client.post(f"/api/v1/clarity/sessions/{session['id']}/next")
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_INVALID_TRANSITION"

    def test_back_and_reset(self, client, workspace, fake_backend):
        session = _create_session(client, workspace.id)
        back = client.post(f"/api/v1/clarity/sessions/{session['id']}/back").get_json()
        assert back["step"] == "import"
        assert back["version"] == session["version"]
        reset = client.post(f"/api/v1/clarity/sessions/{session['id']}/reset").get_json()
        assert reset["step"] == "welcome"
        assert reset["extraction"] is None


class TestCompare:

    def test_validation(self, client, pricing_workspace, fake_backend):
        session = _create_session(client, pricing_workspace["workspace"].id)
        url = f"/api/v1/clarity/sessions/{session['id']}/compare"
        assert client.post(url, json={}).get_json()["code"] == "ERR_VALIDATION_REQUIRED"
        res = client.post(url, json={"roleId": "abc"})
        assert (res.status_code, res.get_json()["code"]) == (400, "ERR_VALIDATION_INVALID")

    def test_unknown_role(self, client, pricing_workspace, fake_backend):
        session = _create_session(client, pricing_workspace["workspace"].id)
        res = client.post(f"/api/v1/clarity/sessions/{session['id']}/compare", json={"roleId": 9999})
        assert res.status_code == 404
        body = res.get_json()
        assert body["code"] == "ERR_COMPARISON_FAILED"
        assert body["details"]["cause"] == "ERR_ROLE_NOT_FOUND"

    def test_compare(self, client, pricing_workspace, fake_backend):
        body = _compared_session(client, pricing_workspace)
        assert body["step"] == "comparison"
        assert body["comparison"]["summary"] == "Fake summary."
        assert len(body["proposals"]) == 8
        overlaps = body["comparison"]["overlaps"]
        assert [o["overlapType"] for o in overlaps] == ["dual_accountability"]


class TestProposals:

    def test_apply_twice(self, client, pricing_workspace, fake_backend):
        body = _compared_session(client, pricing_workspace)
        pid = next(p["id"] for p in body["proposals"] if p["field"] == "budget_level")
        first = client.post(f"/api/v1/clarity/proposals/{pid}/apply", headers=HEADERS)
        assert first.status_code == 200
        assert first.get_json()["proposal"]["status"] == "accepted"
        assert first.get_json()["proposal"]["resolved_by"] == "u1"

        second = client.post(f"/api/v1/clarity/proposals/{pid}/apply", headers=HEADERS)
        assert second.status_code == 409
        assert second.get_json()["details"]["status"] == "accepted"

        _db.session.expire_all()
        assert _db.session.get(Role, pricing_workspace["manager"].id).budget_level == "manage"

    def test_resolving_everything_finishes_session(self, client, pricing_workspace, fake_backend):
        body = _compared_session(client, pricing_workspace)
        steps = []
        for p in body["proposals"]:
            res = client.post(f"/api/v1/clarity/proposals/{p['id']}/dismiss")
            assert res.get_json()["proposal"]["status"] == "dismissed"
            steps.append(res.get_json()["session_step"])
        assert steps[-1] == "done"
        assert "done" not in steps[:-1]

    def test_handoff_proposal_applied(self, client, pricing_workspace, fake_backend):
        body = _compared_session(client, pricing_workspace)
        ws = pricing_workspace["workspace"]
        sell = make_stage(ws, "Sell", 1, [pricing_workspace["director"].id])
        serve = make_stage(ws, "Serve", 2, [pricing_workspace["manager"].id])
        handoff_id = make_handoff(ws, sell, serve, sla_owner="Sales Director").id
        _db.session.commit()

        res = client.post(f"/api/v1/clarity/sessions/{body['id']}/handoff-proposals", headers=HEADERS)
        assert res.status_code == 201
        created = res.get_json()["proposals"]
        assert [(p["target_entity_type"], p["field"]) for p in created] == [("handoff", "sla")]
        assert created[0]["id"] in res.get_json()["session"]["proposal_ids"]

        applied = client.post(f"/api/v1/clarity/proposals/{created[0]['id']}/apply", headers=HEADERS)
        assert applied.status_code == 200
        _db.session.expire_all()
        assert _db.session.get(Handoff, handoff_id).sla == "1 business day"

    def test_handoff_proposals_before_compare(self, client, workspace, fake_backend):
        session = _create_session(client, workspace.id)
        res = client.post(f"/api/v1/clarity/sessions/{session['id']}/handoff-proposals")
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_INVALID_TRANSITION"

    def test_unknown_proposal(self, client):
        res = client.post("/api/v1/clarity/proposals/4242/apply")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_PROPOSAL_NOT_FOUND"

    def test_comments(self, client, pricing_workspace, fake_backend):
        body = _compared_session(client, pricing_workspace)
        pid = body["proposals"][0]["id"]
        url = f"/api/v1/clarity/sessions/{body['id']}/comments"
        res = client.post(url, json={"content": "Agreed", "proposalId": pid, "isApproval": 1}, headers=HEADERS)
        assert res.status_code == 201
        assert client.post(url, json={"content": ""}).status_code == 400

        listing = client.get(url).get_json()
        assert [c["content"] for c in listing["items"]] == ["Agreed"]
        assert listing["approvals"][str(pid)]["approvals"] == 1
        _db.session.expire_all()
        assert _db.session.get(ClarityProposal, pid).status == "pending"


class TestWorkspaceAnalysis:

    def test_overlaps_need_two_roles(self, client, workspace):
        res = client.post(f"/api/v1/workspaces/{workspace.id}/overlaps", json={})
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_INSUFFICIENT_DATA"

    def test_overlaps_without_narrative(self, client, pricing_workspace, fake_backend):
        res = client.post(f"/api/v1/workspaces/{pricing_workspace['workspace'].id}/overlaps",
                          json={"narrative": False})
        assert res.status_code == 200
        assert res.get_json()["workspaceHealth"]["overallScore"] == 100
        assert fake_backend.calls == []

    def test_overlaps_with_narrative(self, client, pricing_workspace, fake_backend):
        res = client.post(f"/api/v1/workspaces/{pricing_workspace['workspace'].id}/overlaps")
        assert res.get_json()["workspaceHealth"]["topRiskStatement"] == "Fake top risk."

    def test_overlap_narrative_failure(self, client, pricing_workspace, fake_backend):
        fake_backend.fail = "schema"
        res = client.post(f"/api/v1/workspaces/{pricing_workspace['workspace'].id}/overlaps")
        assert res.status_code == 502
        assert res.get_json()["code"] == "ERR_ANALYSIS_FAILED"

    def test_handoff_slas(self, client, pricing_workspace):
        ws = pricing_workspace["workspace"]
        make_stage(ws, "Sell", 1, [pricing_workspace["director"].id])
        make_stage(ws, "Serve", 2, [pricing_workspace["manager"].id])
        _db.session.commit()
        res = client.post(f"/api/v1/workspaces/{ws.id}/handoffs/suggest-sla", json={"narrative": False})
        assert res.status_code == 200
        body = res.get_json()
        assert body["handoffHealth"]["uncoveredHandoffs"] == 1
        assert body["suggestions"][0]["suggestedSLA"] == "1 business day"


class TestEdits:

    def test_edit_commit_cycle(self, client, pricing_workspace):
        rid = pricing_workspace["manager"].id
        assert client.post(f"/api/v1/edits/role/{rid}/touch").get_json()["has_changes"] is False
        patched = client.patch(f"/api/v1/edits/role/{rid}", json={"job_title": "Key Account Manager"})
        assert patched.get_json()["has_changes"] is True
        committed = client.post(f"/api/v1/edits/role/{rid}/commit").get_json()
        assert committed["written"] == ["job_title"]
        assert client.get(f"/api/v1/edits/role/{rid}").get_json()["values"]["job_title"] == "Key Account Manager"

    def test_patch_validation(self, client, pricing_workspace):
        rid = pricing_workspace["manager"].id
        assert client.patch(f"/api/v1/edits/role/{rid}", json={}).status_code == 400
        res = client.patch(f"/api/v1/edits/role/{rid}", json={"budget_level": "galaxy"})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_unknown_entity(self, client):
        res = client.post("/api/v1/edits/role/999/touch")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_member_removal_needs_confirm(self, client, pricing_workspace):
        manager = pricing_workspace["manager"]
        activity = make_activity(pricing_workspace["workspace"], "Renewal playbook", role_ids=[manager.id])
        make_progression(manager, [activity.id])
        _db.session.commit()
        url = f"/api/v1/edits/activity/{activity.id}/members"

        res = client.post(url, json={"roleId": manager.id, "action": "remove"})
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFIRMATION_REQUIRED"

        res = client.post(url, json={"roleId": manager.id, "action": "remove", "confirm": True})
        assert res.status_code == 200
        assert res.get_json()["values"]["role_ids"] == []

        discarded = client.post(f"/api/v1/edits/activity/{activity.id}/discard").get_json()
        assert discarded["restored_members"] == [manager.id]

    def test_member_body_validation(self, client, pricing_workspace):
        activity = make_activity(pricing_workspace["workspace"], "Playbook")
        _db.session.commit()
        url = f"/api/v1/edits/activity/{activity.id}/members"
        assert client.post(url, json={"action": "add"}).status_code == 400
        assert client.post(url, json={"roleId": 1, "action": "swap"}).status_code == 400

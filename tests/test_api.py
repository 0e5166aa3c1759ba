"""
HTTP tests — the workflow driven end to end through the JSON API.

Every request names its actor in the ``X-User`` header, as the upstream
gateway does.
"""
import pytest

from tests.conftest import CHEAP_ITEMS, COSTLY_ITEMS, DAMAGE_ITEMS

API = "/api/v1"


def _h(username="admin"):
    return {"X-User": username}


@pytest.fixture()
def api(client, admin):
    """Small wrapper posting JSON as the admin actor."""

    class _Api:
        def post(self, path, body=None, user="admin"):
            return client.post(f"{API}{path}", json=body or {}, headers=_h(user))

        def put(self, path, body=None, user="admin"):
            return client.put(f"{API}{path}", json=body or {}, headers=_h(user))

        def get(self, path, user="admin", **params):
            return client.get(f"{API}{path}", query_string=params, headers=_h(user))

        def delete(self, path, user="admin"):
            return client.delete(f"{API}{path}", headers=_h(user))

        def transition(self, segment, job_id, action, user="admin", **payload):
            return self.post(f"/{segment}/{job_id}/transition", {"action": action, **payload}, user)

        def container(self, number="MSCU1234567"):
            resp = self.post("/containers", {"container_number": number, "liner": "MSC", "size": "20"})
            assert resp.status_code == 201
            return resp.get_json()

        def survey(self, container_id):
            created = self.post("/surveys", {"container_id": container_id, "survey_type": "GATE_IN"})
            assert created.status_code == 201
            done = self.transition(
                "surveys", created.get_json()["id"], "complete",
                initial_condition="DAMAGED", damage_items=DAMAGE_ITEMS,
            )
            assert done.status_code == 200
            return done.get_json()

    return _Api()


# ═════════════════════════════════════════════════════════════════════════
# HAPPY PATH
# ═════════════════════════════════════════════════════════════════════════

class TestFullCycle:
    def test_gate_in_to_available(self, api):
        container = api.container("mscu1234567")
        cid = container["id"]
        assert container["container_number"] == "MSCU1234567"
        assert container["status"] == "STACKING"

        survey = api.survey(cid)
        assert survey["container_status"] == "DM"

        resp = api.post("/estimates", {"container_id": cid, "repair_items": CHEAP_ITEMS})
        assert resp.status_code == 201
        estimate = resp.get_json()
        assert estimate["new_status"] == "AUTO_APPROVED"
        assert estimate["container_status"] == "AR"
        assert estimate["job"]["transaction_id"] == survey["id"]

        shunt = api.post("/shunting", {"container_id": cid, "to_block": "R", "assigned_driver": "Ali"})
        assert shunt.get_json()["new_status"] == "DISPATCHED"
        sid = shunt.get_json()["id"]
        api.transition("shunting", sid, "start")
        assert api.transition("shunting", sid, "complete").get_json()["container_status"] == "AR"

        repair = api.post("/repair-orders", {"container_id": cid}).get_json()
        assert repair["container_status"] == "REPAIR"
        api.transition("repair-orders", repair["id"], "start")
        api.transition("repair-orders", repair["id"], "complete")

        inspection = api.post("/pre-inspections", {"container_id": cid}).get_json()
        accepted = api.transition(
            "pre-inspections", inspection["id"], "complete",
            damage_item_results={"damage_0": True, "damage_1": True},
        ).get_json()
        assert accepted["container_status"] == "COMPLETED"

        stacking = api.post(
            "/stacking", {"container_id": cid, "target_location": {"block": "S", "row": "04"}},
        ).get_json()
        released = api.transition("stacking", stacking["id"], "complete").get_json()
        assert released["container_status"] == "AV"
        assert released["job"]["gate_pass_number"].startswith("GP-")

        detail = api.get(f"/containers/{cid}").get_json()
        assert detail["status"] == "AV"
        assert detail["yard_location"] == {"block": "S", "row": "04", "tier": "1"}

        progress = api.get(f"/containers/{cid}/progress").get_json()
        assert progress["completed_steps"] == 11
        assert progress["current_step"] is None

        jobs = api.get(f"/containers/{cid}/jobs").get_json()
        assert jobs["total"] == 6
        assert jobs["jobs"]["washing_order"] == []

        by_tx = api.get(f"/transactions/{survey['id']}/jobs").get_json()
        assert by_tx["total"] == 6

        trail = api.get(f"/containers/{cid}/audit", per_page=200).get_json()
        actions = [log["action"] for log in trail["audit_logs"]]
        assert actions[0] == "container.register"
        assert "estimate.create" in actions
        assert "stacking.complete" in actions
        assert all(log["actor"] == "admin" for log in trail["audit_logs"])

    def test_rework_loop_over_http(self, api, approver):
        cid = api.container()["id"]
        api.survey(cid)
        estimate = api.post("/estimates", {"container_id": cid, "repair_items": COSTLY_ITEMS}).get_json()
        assert estimate["new_status"] == "PENDING"
        api.transition("estimates", estimate["id"], "approve", user="approver", approval_notes="ok")
        sid = api.post("/shunting", {"container_id": cid, "to_block": "R"}).get_json()["id"]
        api.transition("shunting", sid, "start")
        api.transition("shunting", sid, "complete")
        rid = api.post("/repair-orders", {"container_id": cid}).get_json()["id"]
        api.transition("repair-orders", rid, "start")
        api.transition("repair-orders", rid, "complete")

        pid = api.post("/pre-inspections", {"container_id": cid}).get_json()["id"]
        failed = api.transition(
            "pre-inspections", pid, "complete",
            damage_item_results={"damage_0": False, "damage_1": True},
        ).get_json()
        assert failed["new_status"] == "PENDING_REWORK"
        assert failed["container_status"] == "REPAIR"

        repair = api.get(f"/repair-orders/{rid}").get_json()
        assert repair["status"] == "IN_PROGRESS"
        assert repair["rework_required"] is True
        assert api.get(f"/containers/{cid}").get_json()["rework_count"] == 1


# ═════════════════════════════════════════════════════════════════════════
# ERROR MAPPING
# ═════════════════════════════════════════════════════════════════════════

class TestErrors:
    def test_missing_container_number(self, api):
        resp = api.post("/containers", {"liner": "MSC"})
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_duplicate_container(self, api):
        api.container()
        resp = api.post("/containers", {"container_number": "MSCU1234567"})
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "ERR_CONFLICT_DUPLICATE"

    def test_non_object_body(self, api, client):
        resp = client.post(f"{API}/containers", json=["MSCU1234567"], headers=_h())
        assert resp.status_code == 422

    def test_precondition(self, api):
        cid = api.container()["id"]
        resp = api.post("/estimates", {"container_id": cid, "repair_items": CHEAP_ITEMS})
        assert resp.status_code == 409
        body = resp.get_json()
        assert body["code"] == "ERR_PRECONDITION_NOT_MET"
        assert body["details"]["stage"] == "estimate"

    def test_duplicate_active_job(self, api):
        cid = api.container()["id"]
        api.post("/surveys", {"container_id": cid})
        resp = api.post("/surveys", {"container_id": cid})
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "ERR_DUPLICATE_ACTIVE_JOB"

    def test_invalid_transition(self, api):
        cid = api.container()["id"]
        survey = api.survey(cid)
        resp = api.transition("surveys", survey["id"], "start")
        assert resp.status_code == 409
        body = resp.get_json()
        assert body["code"] == "ERR_INVALID_TRANSITION"
        assert body["details"]["current_status"] == "COMPLETED"

    def test_business_validation_is_422(self, api):
        cid = api.container()["id"]
        sid = api.post("/surveys", {"container_id": cid, "survey_type": "GATE_IN"}).get_json()["id"]
        resp = api.transition("surveys", sid, "complete", initial_condition="DAMAGED")
        assert resp.status_code == 422
        body = resp.get_json()
        assert body["code"] == "ERR_VALIDATION_INVALID"
        assert "damage_items" in body["details"]

    def test_forbidden_decision(self, api, clerk):
        cid = api.container()["id"]
        api.survey(cid)
        eid = api.post("/estimates", {"container_id": cid, "repair_items": COSTLY_ITEMS}).get_json()["id"]
        resp = api.transition("estimates", eid, "approve", user="clerk")
        assert resp.status_code == 403
        assert resp.get_json()["code"] == "ERR_FORBIDDEN"

    def test_anonymous_caller_holds_no_capabilities(self, api, client):
        cid = api.container()["id"]
        api.survey(cid)
        eid = api.post("/estimates", {"container_id": cid, "repair_items": COSTLY_ITEMS}).get_json()["id"]
        resp = client.post(f"{API}/estimates/{eid}/transition", json={"action": "approve"})
        assert resp.status_code == 403

    def test_body_naming_the_job_id_is_ignored(self, api, approver):
        cid = api.container()["id"]
        api.survey(cid)
        eid = api.post("/estimates", {"container_id": cid, "repair_items": COSTLY_ITEMS}).get_json()["id"]
        resp = api.transition("estimates", eid, "approve", user="approver", eor_id="someone-else")
        assert resp.status_code == 200
        assert resp.get_json()["id"] == eid
        assert resp.get_json()["new_status"] == "APPROVED"

    def test_body_cannot_name_the_actor(self, api, clerk, approver):
        cid = api.container()["id"]
        api.survey(cid)
        eid = api.post("/estimates", {"container_id": cid, "repair_items": COSTLY_ITEMS}).get_json()["id"]
        denied = api.transition("estimates", eid, "approve", user="clerk", actor="approver")
        assert denied.status_code == 403
        approved = api.transition("estimates", eid, "approve", user="approver", actor="clerk")
        assert approved.status_code == 200
        assert approved.get_json()["job"]["approved_by"] == "approver"

    def test_batch_body_reserved_keys_are_ignored(self, api, approver):
        cid = api.container()["id"]
        api.survey(cid)
        eid = api.post("/estimates", {"container_id": cid, "repair_items": COSTLY_ITEMS}).get_json()["id"]
        resp = api.post(
            "/estimates/batch-decide",
            {"ids": [eid], "action": "approve", "actor": "clerk", "eor_ids": ["x"], "stage": "survey"},
            user="approver",
        )
        assert resp.status_code == 200
        assert [r["id"] for r in resp.get_json()["success"]] == [eid]

    def test_blocked_delete(self, api):
        cid = api.container()["id"]
        survey = api.survey(cid)
        api.post("/estimates", {"container_id": cid, "repair_items": COSTLY_ITEMS})
        resp = api.delete(f"/surveys/{survey['id']}")
        assert resp.status_code == 409
        body = resp.get_json()
        assert body["code"] == "ERR_BLOCKED_BY_DOWNSTREAM"
        assert body["details"]["blocking_stage"] == "estimate"

    def test_delete_top_job(self, api):
        cid = api.container()["id"]
        survey = api.survey(cid)
        resp = api.delete(f"/surveys/{survey['id']}")
        assert resp.status_code == 200
        assert resp.get_json()["container_status"] == "STACKING"

    def test_not_found(self, api):
        resp = api.get("/surveys/nope")
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "ERR_NOT_FOUND"
        assert api.get("/containers/nope").status_code == 404

    def test_unknown_stage_segment(self, api):
        resp = api.post("/gate-out", {"container_id": "x"})
        assert resp.status_code == 404

    def test_required_fields(self, api):
        assert api.post("/surveys", {}).status_code == 400
        assert api.get("/surveys").status_code == 400
        cid = api.container()["id"]
        sid = api.post("/surveys", {"container_id": cid}).get_json()["id"]
        assert api.post(f"/surveys/{sid}/transition", {}).status_code == 400
        assert api.post("/surveys/batch-transition", {"action": "start"}).status_code == 400

    def test_update_unsupported_stage(self, api):
        assert api.put("/shunting/anything", {"notes": "x"}).status_code == 422


# ═════════════════════════════════════════════════════════════════════════
# LISTS, BATCHES, SETTINGS, AUDIT, HEALTH
# ═════════════════════════════════════════════════════════════════════════

class TestQueries:
    def test_list_by_number(self, api):
        cid = api.container()["id"]
        api.survey(cid)
        body = api.get("/surveys", container_number="mscu1234567").get_json()
        assert body["total"] == 1
        assert body["items"][0]["container_id"] == cid

    def test_search_and_stats(self, api):
        api.container("MSCU0000001")
        api.container("TGHU0000002")
        assert api.get("/containers", q="TGHU").get_json()["total"] == 1
        assert api.get("/containers/stats").get_json()["total"] == 2
        assert api.get("/containers/by-number/tghu0000002").status_code == 200

    def test_update_draft_survey(self, api):
        cid = api.container()["id"]
        sid = api.post("/surveys", {"container_id": cid}).get_json()["id"]
        resp = api.put(f"/surveys/{sid}", {"notes": "door seal"})
        assert resp.status_code == 200
        assert resp.get_json()["job"]["notes"] == "door seal"

    def test_batch_transition(self, api):
        a = api.container("MSCU0000001")["id"]
        b = api.container("MSCU0000002")["id"]
        ids = [api.post("/surveys", {"container_id": c}).get_json()["id"] for c in (a, b)]
        resp = api.post("/surveys/batch-transition", {"ids": ids + ["missing"], "action": "start"})
        body = resp.get_json()
        assert resp.status_code == 200
        assert len(body["success"]) == 2
        assert body["errors"][0]["id"] == "missing"

    def test_batch_decide_and_stats(self, api, approver):
        ids = []
        for number in ("MSCU0000001", "MSCU0000002"):
            cid = api.container(number)["id"]
            api.survey(cid)
            ids.append(api.post(
                "/estimates", {"container_id": cid, "repair_items": COSTLY_ITEMS},
            ).get_json()["id"])
        resp = api.post("/estimates/batch-decide", {"ids": ids, "action": "approve"}, user="approver")
        assert len(resp.get_json()["success"]) == 2
        stats = api.get("/estimates/stats").get_json()
        assert stats["approved"] == 2
        assert stats["pending"] == 0

    def test_batch_decide_requires_ids(self, api):
        assert api.post("/estimates/batch-decide", {"action": "approve"}).status_code == 400

    def test_resolve_status_endpoint(self, api):
        cid = api.container()["id"]
        body = api.post(f"/containers/{cid}/resolve-status").get_json()
        assert body["status"] == "STACKING"


class TestSettingsAndAudit:
    def test_threshold_round_trip(self, api):
        assert api.get("/settings/auto-approval-threshold").get_json()["threshold"] == 100.0
        resp = api.put("/settings/auto-approval-threshold", {"threshold": 300})
        assert resp.status_code == 200
        assert api.get("/settings/auto-approval-threshold").get_json()["threshold"] == 300.0

        cid = api.container()["id"]
        api.survey(cid)
        estimate = api.post("/estimates", {"container_id": cid, "repair_items": COSTLY_ITEMS}).get_json()
        assert estimate["new_status"] == "AUTO_APPROVED"

    def test_threshold_validation(self, api, clerk):
        assert api.put("/settings/auto-approval-threshold", {}).status_code == 400
        assert api.put("/settings/auto-approval-threshold", {"threshold": -5}).status_code == 422
        assert api.put(
            "/settings/auto-approval-threshold", {"threshold": 5}, user="clerk",
        ).status_code == 403

    def test_audit_filters(self, api):
        cid = api.container()["id"]
        api.survey(cid)
        body = api.get("/audit", action="survey.").get_json()
        assert {log["action"] for log in body["audit_logs"]} == {"survey.create", "survey.complete"}
        assert api.get("/audit", container_id=cid, per_page=2).get_json()["pages"] >= 2

        log_id = body["audit_logs"][0]["id"]
        assert api.get(f"/audit/{log_id}").get_json()["id"] == log_id
        assert api.get("/audit/999999").status_code == 404


class TestHealthAndMiddleware:
    def test_ready(self, client):
        resp = client.get(f"{API}/health/ready")
        assert resp.status_code == 200
        assert resp.get_json() == {"status": "ok"}

    def test_live(self, client):
        resp = client.get(f"{API}/health/live")
        assert resp.status_code == 200
        assert resp.get_json()["checks"]["database"]["status"] == "ok"

    def test_request_id_echoed(self, client):
        resp = client.get(f"{API}/health/ready", headers={"X-Request-ID": "abc123"})
        assert resp.headers["X-Request-ID"] == "abc123"
        assert "X-Request-Duration-Ms" in resp.headers

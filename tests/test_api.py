from unittest import mock

import pytest

from reviewdesk.models import Deliverable, WorkflowEvent
from reviewdesk.services.store import DeliverableStore
from reviewdesk.workflow.errors import ConcurrentModification


class TestAuth:

    def test_login_and_me(self, login_as, admin):
        http = login_as(admin)
        resp = http.get("/auth/me")
        assert resp.status_code == 200
        assert resp.get_json()["user"]["role"] == "admin"

    def test_bad_password(self, http, admin):
        resp = http.post("/auth/login", json={"email": admin.email, "password": "nope"})
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "invalid_credentials"

    def test_login_validation(self, http):
        resp = http.post("/auth/login", json={"email": "not-an-email"})
        assert resp.status_code == 400
        body = resp.get_json()
        assert "email" in body["fields"] and "password" in body["fields"]

    def test_anonymous_is_rejected(self, http, make_deliverable):
        d = make_deliverable()
        assert http.get("/deliverables").status_code == 401
        assert http.post(f"/deliverables/{d.id}/submit").status_code == 401


class TestTransitions:

    def test_submit(self, login_as, admin, make_deliverable):
        d = make_deliverable()
        resp = login_as(admin).post(f"/deliverables/{d.id}/submit", json={})

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "pending_review"
        assert body["version"] == 1
        assert body["submitted_at"]
        assert body["message"] == "Submitted for review."

    def test_full_review_cycle(self, login_as, admin, client_user, make_deliverable):
        d = make_deliverable()
        http = login_as(admin)
        assert http.post(f"/deliverables/{d.id}/submit").status_code == 200

        http = login_as(client_user)
        resp = http.post(f"/deliverables/{d.id}/request-changes", json={"feedback": "fix the logo colors"})
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "needs_changes"

        http = login_as(admin)
        resp = http.post(f"/deliverables/{d.id}/submit", json={"message": "Colors fixed"})
        assert resp.get_json()["version"] == 2
        assert resp.get_json()["message"] == "Resubmitted as version 2."

        http = login_as(client_user)
        resp = http.post(f"/deliverables/{d.id}/approve", json={})
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "approved"
        assert resp.get_json()["approved_at"]

        http = login_as(admin)
        resp = http.post(f"/deliverables/{d.id}/deliver", json={
            "deliveryNotes": "All sizes included",
            "finalFiles": [{"url": "https://cdn.example.com/logo-final.zip", "name": "logo-final.zip"}],
        })
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "delivered"
        assert body["delivered_at"]
        assert [f["kind"] for f in body["files"]] == ["final"]

        events = http.get(f"/deliverables/{d.id}/events").get_json()["events"]
        assert [e["action"] for e in events] == ["submit", "request_changes", "submit", "approve", "deliver"]
        assert events[1]["note"] == "fix the logo colors"
        assert events[-1]["note"] == "All sizes included"

    def test_blank_feedback_is_400(self, db, login_as, client_user, make_deliverable):
        d = make_deliverable(status="pending_review")
        resp = login_as(client_user).post(f"/deliverables/{d.id}/request-changes", json={"feedback": "   "})

        assert resp.status_code == 400
        body = resp.get_json()
        assert body["error"] == "validation_error"
        assert body["field"] == "feedback"
        assert db.session.get(Deliverable, d.id).status == "pending_review"

    def test_client_cannot_approve_draft(self, db, login_as, client_user, make_deliverable):
        d = make_deliverable()
        resp = login_as(client_user).post(f"/deliverables/{d.id}/approve", json={})

        assert resp.status_code == 409
        body = resp.get_json()
        assert body["error"] == "invalid_transition"
        assert body["current_status"] == "draft"
        assert body["action"] == "approve"
        assert db.session.get(Deliverable, d.id).status == "draft"

    def test_admin_cannot_approve_for_the_client(self, login_as, admin, make_deliverable):
        d = make_deliverable(status="pending_review")
        resp = login_as(admin).post(f"/deliverables/{d.id}/approve", json={})
        assert resp.status_code == 409

    def test_unknown_deliverable_is_404(self, login_as, admin):
        resp = login_as(admin).post("/deliverables/424242/submit")
        assert resp.status_code == 404
        assert resp.get_json()["error"] == "not_found"

    def test_client_cannot_touch_another_clients_project(self, login_as, other_client, make_deliverable):
        d = make_deliverable(status="pending_review")
        http = login_as(other_client)
        assert http.post(f"/deliverables/{d.id}/approve").status_code == 403
        assert http.get(f"/deliverables/{d.id}").status_code == 403

    def test_delivered_rejects_everything(self, login_as, admin, client_user, make_deliverable):
        d = make_deliverable(status="delivered")
        http = login_as(admin)
        for path in ("submit", "deliver"):
            assert http.post(f"/deliverables/{d.id}/{path}").status_code == 409
        http = login_as(client_user)
        assert http.post(f"/deliverables/{d.id}/approve").status_code == 409
        assert http.post(f"/deliverables/{d.id}/request-changes", json={"feedback": "x"}).status_code == 409

    def test_bad_final_files_payload(self, login_as, admin, make_deliverable):
        d = make_deliverable(status="approved")
        resp = login_as(admin).post(f"/deliverables/{d.id}/deliver", json={"finalFiles": [{"name": "no-url"}]})
        assert resp.status_code == 400
        assert resp.get_json()["field"] == "finalFiles"

    def test_outcome_is_flashed(self, app, login_as, admin, make_deliverable):
        d = make_deliverable()
        http = login_as(admin)
        http.post(f"/deliverables/{d.id}/submit")
        with http.session_transaction() as sess:
            flashes = sess.get("_flashes", [])
        assert ("success", "Submitted for review.") in flashes

    def test_non_object_body_is_400(self, db, login_as, admin, make_deliverable):
        d = make_deliverable()
        resp = login_as(admin).post(f"/deliverables/{d.id}/submit", json=["x"])

        assert resp.status_code == 400
        body = resp.get_json()
        assert body["error"] == "validation_error"
        assert body["field"] == "body"
        assert db.session.get(Deliverable, d.id).status == "draft"

    @pytest.mark.parametrize("method, path", [
        ("post", "/deliverables/{id}/deliver"),
        ("patch", "/deliverables/{id}"),
        ("post", "/deliverables"),
    ])
    def test_non_object_body_is_400_everywhere(self, login_as, admin, make_deliverable, method, path):
        d = make_deliverable(status="approved")
        resp = getattr(login_as(admin), method)(path.format(id=d.id), json=[1, 2])
        assert resp.status_code == 400

    def test_unknown_deliverable_is_relayed(self, login_as, admin):
        http = login_as(admin)
        http.post("/deliverables/424242/approve")
        with http.session_transaction() as sess:
            flashes = sess.get("_flashes", [])
        assert [c for c, _ in flashes] == ["danger"]


class TestCrud:

    def test_create(self, login_as, admin, project):
        resp = login_as(admin).post("/deliverables", json={
            "project_id": project.id,
            "title": "  Banner set ",
            "type": "image",
            "files": ["https://cdn.example.com/banner.png"],
        })
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["title"] == "Banner set"
        assert body["status"] == "draft"
        assert body["version"] == 1
        assert body["available_actions"] == ["submit"]
        assert body["files"][0]["url"] == "https://cdn.example.com/banner.png"

    def test_due_date_on_create_and_patch(self, login_as, admin, project):
        http = login_as(admin)
        resp = http.post("/deliverables", json={"project_id": project.id, "title": "Press kit", "due_date": "2024-06-14"})
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["due_date"] == "2024-06-14"

        resp = http.patch(f"/deliverables/{body['id']}", json={"due_date": "2024-07-01", "description": None})
        assert resp.status_code == 200
        assert resp.get_json()["due_date"] == "2024-07-01"

    def test_bad_due_date(self, login_as, admin, project):
        resp = login_as(admin).post("/deliverables", json={"project_id": project.id, "title": "Press kit", "due_date": "soon"})
        assert resp.status_code == 400
        assert "due_date" in resp.get_json()["fields"]

    def test_create_validation(self, login_as, admin, project):
        resp = login_as(admin).post("/deliverables", json={"project_id": project.id, "title": "", "type": "hologram"})
        assert resp.status_code == 400
        fields = resp.get_json()["fields"]
        assert "title" in fields and "type" in fields

    def test_client_cannot_create(self, login_as, client_user, project):
        resp = login_as(client_user).post("/deliverables", json={"project_id": project.id, "title": "Sneaky"})
        assert resp.status_code == 403

    def test_create_in_missing_project(self, login_as, admin):
        resp = login_as(admin).post("/deliverables", json={"project_id": 999, "title": "Orphan"})
        assert resp.status_code == 404

    def test_detail_lists_actions_for_the_caller(self, login_as, admin, client_user, make_deliverable):
        d = make_deliverable(status="pending_review")
        assert login_as(admin).get(f"/deliverables/{d.id}").get_json()["available_actions"] == []
        body = login_as(client_user).get(f"/deliverables/{d.id}").get_json()
        assert body["available_actions"] == ["approve", "request_changes"]

    def test_patch_ignores_status(self, db, login_as, admin, make_deliverable):
        d = make_deliverable()
        resp = login_as(admin).patch(f"/deliverables/{d.id}", json={
            "title": "Renamed",
            "status": "approved",
            "files": [{"url": "https://cdn.example.com/extra.pdf"}],
        })
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["title"] == "Renamed"
        assert body["status"] == "draft"
        assert len(body["files"]) == 1

    def test_patch_blank_title(self, login_as, admin, make_deliverable):
        d = make_deliverable()
        resp = login_as(admin).patch(f"/deliverables/{d.id}", json={"title": "  "})
        assert resp.status_code == 400

    def test_patch_delivered_is_locked(self, login_as, admin, make_deliverable):
        d = make_deliverable(status="delivered")
        resp = login_as(admin).patch(f"/deliverables/{d.id}", json={"title": "Too late"})
        assert resp.status_code == 409

    def test_delete(self, db, login_as, admin, make_deliverable):
        d = make_deliverable(status="needs_changes")
        deliverable_id = d.id
        resp = login_as(admin).delete(f"/deliverables/{deliverable_id}")
        assert resp.status_code == 200
        assert db.session.get(Deliverable, deliverable_id) is None

    def test_delete_delivered_is_gated(self, app, db, login_as, admin, make_deliverable):
        d = make_deliverable(status="delivered")
        http = login_as(admin)
        assert http.delete(f"/deliverables/{d.id}").status_code == 409

        app.config["ALLOW_DELETE_DELIVERED"] = True
        assert http.delete(f"/deliverables/{d.id}").status_code == 200

    def test_client_cannot_delete(self, login_as, client_user, make_deliverable):
        d = make_deliverable()
        assert login_as(client_user).delete(f"/deliverables/{d.id}").status_code == 403


class TestListing:

    @pytest.fixture
    def seeded(self, make_deliverable, other_project):
        return {
            "draft": make_deliverable(title="Draft one"),
            "pending": make_deliverable(title="Pending one", status="pending_review"),
            "changes": make_deliverable(title="Changes one", status="needs_changes"),
            "approved": make_deliverable(title="Approved one", status="approved"),
            "elsewhere": make_deliverable(title="Other client", status="pending_review",
                                          project_id=other_project.id),
        }

    def test_admin_sees_everything(self, login_as, admin, seeded):
        body = login_as(admin).get("/deliverables").get_json()
        assert body["count"] == 5

    def test_client_sees_own_projects(self, login_as, client_user, seeded):
        body = login_as(client_user).get("/deliverables").get_json()
        titles = {d["title"] for d in body["deliverables"]}
        assert "Other client" not in titles
        assert body["count"] == 4

    def test_status_filter(self, login_as, admin, seeded, project):
        body = login_as(admin).get(f"/deliverables?project_id={project.id}&status=pending_review").get_json()
        assert [d["title"] for d in body["deliverables"]] == ["Pending one"]

    def test_unknown_status_filter(self, login_as, admin, seeded):
        resp = login_as(admin).get("/deliverables?status=archived")
        assert resp.status_code == 400

    def test_client_cannot_list_foreign_project(self, login_as, client_user, seeded, other_project):
        resp = login_as(client_user).get(f"/deliverables?project_id={other_project.id}")
        assert resp.status_code == 403

    def test_stats(self, login_as, admin, seeded, project):
        body = login_as(admin).get(f"/deliverables/stats?project_id={project.id}").get_json()
        assert body["pending_review"] == 1
        assert body["needs_changes"] == 1
        assert body["total"] == 4

    def test_client_approvals_inbox(self, login_as, client_user, seeded):
        body = login_as(client_user).get("/approvals").get_json()
        assert body["role"] == "client"
        assert [d["title"] for d in body["awaiting_approval"]] == ["Pending one"]
        assert body["awaiting_approval"][0]["project_name"] == "Spring Campaign"
        assert "ready_to_deliver" not in body

    def test_admin_approvals_inbox(self, login_as, admin, seeded):
        body = login_as(admin).get("/approvals").get_json()
        assert {d["title"] for d in body["awaiting_approval"]} == {"Pending one", "Other client"}
        assert [d["title"] for d in body["awaiting_revision"]] == ["Changes one"]
        assert [d["title"] for d in body["ready_to_deliver"]] == ["Approved one"]
        assert body["ready_to_deliver"][0]["available_actions"] == ["deliver"]

    def test_admin_approvals_inbox_for_one_project(self, login_as, admin, seeded, other_project):
        body = login_as(admin).get(f"/approvals?project_id={other_project.id}").get_json()
        assert [d["title"] for d in body["awaiting_approval"]] == ["Other client"]
        assert body["awaiting_revision"] == []


class TestConflicts:

    def _flaky_save(self, failures):
        real = DeliverableStore.save_if_version_matches
        calls = []

        def save(store, deliverable_id, *args, **kwargs):
            calls.append(deliverable_id)
            if len(calls) <= failures:
                raise ConcurrentModification(deliverable_id)
            return real(store, deliverable_id, *args, **kwargs)

        return save, calls

    def test_lost_race_is_retried_once(self, db, login_as, client_user, make_deliverable):
        d = make_deliverable(status="pending_review")
        save, calls = self._flaky_save(failures=1)

        with mock.patch.object(DeliverableStore, "save_if_version_matches", save):
            resp = login_as(client_user).post(f"/deliverables/{d.id}/approve", json={})

        assert resp.status_code == 200
        assert resp.get_json()["status"] == "approved"
        assert calls == [d.id, d.id]
        assert WorkflowEvent.query.filter_by(deliverable_id=d.id).count() == 1

    def test_conflict_after_retry_is_409(self, db, login_as, client_user, make_deliverable):
        d = make_deliverable(status="pending_review")
        save, calls = self._flaky_save(failures=99)

        http = login_as(client_user)
        with mock.patch.object(DeliverableStore, "save_if_version_matches", save):
            resp = http.post(f"/deliverables/{d.id}/request-changes", json={"feedback": "crop tighter"})

        assert resp.status_code == 409
        body = resp.get_json()
        assert body["error"] == "concurrent_modification"
        assert body["deliverable_id"] == d.id
        assert len(calls) == 2
        assert db.session.get(Deliverable, d.id).status == "pending_review"

        with http.session_transaction() as sess:
            flashes = sess.get("_flashes", [])
        assert [c for c, _ in flashes] == ["info"]

    def test_retry_budget_comes_from_config(self, app, login_as, client_user, make_deliverable):
        app.config["WORKFLOW_CONFLICT_RETRIES"] = 0
        d = make_deliverable(status="pending_review")
        save, calls = self._flaky_save(failures=1)

        with mock.patch.object(DeliverableStore, "save_if_version_matches", save):
            resp = login_as(client_user).post(f"/deliverables/{d.id}/approve", json={})

        assert resp.status_code == 409
        assert len(calls) == 1

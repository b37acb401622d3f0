from datetime import datetime

from src.api.repositories import InMemoryAuditLogRepository


class BrokenAuditLog(InMemoryAuditLogRepository):
    def insert_many(self, entries):
        raise RuntimeError("disk full")


def create(client, **payload):
    res = client.post("/api/v1/tasks/", json=payload)
    assert res.status_code == 201
    return res.json()


class TestTaskHistory:
    def test_newest_first_with_current_title(self, client, clock):
        tid = create(client, title="Draft")["id"]
        clock.advance(minutes=10)
        client.put(f"/api/v1/tasks/{tid}", json={"status": "Working on it"})
        clock.advance(minutes=10)
        client.put(f"/api/v1/tasks/{tid}", json={"title": "Final"})

        res = client.get(f"/api/v1/audit-logs/task/{tid}")
        assert res.status_code == 200
        logs = res.json()
        assert [e["action"] for e in logs] == ["Updated Title", "Updated Status", "Created"]
        assert all(e["task_title"] == "Final" for e in logs)
        assert logs[1]["old_value"] == "Assigned"
        assert logs[1]["timestamp"] == "2025-03-10T09:10:00"

    def test_unknown_task(self, client):
        res = client.get("/api/v1/audit-logs/task/31337")
        assert res.status_code == 404
        assert res.json()["error"] == "NotFound"


class TestTimeline:
    def test_work_session_duration(self, client, clock, users):
        tid = create(client, title="Fix login")["id"]
        client.put(f"/api/v1/tasks/{tid}", json={"status": "Working on it"})
        clock.advance(minutes=45)
        client.put(f"/api/v1/tasks/{tid}", json={"status": "Finished"})

        res = client.get(
            f"/api/v1/audit-logs/user/{users['Nemo']['id']}/timeline", params={"date": "2025-03-10"}
        )
        assert res.status_code == 200
        timeline = res.json()
        assert [(e["time"], e["label"], e["kind"]) for e in timeline] == [
            ("9:00 AM", 'Created: "Fix login"', "other"),
            ("9:00 AM", 'Started working on "Fix login"', "start"),
            ("9:45 AM", 'Finished "Fix login" (Duration: 45m)', "finish"),
        ]
        assert timeline[2]["status"] == "Finished"
        assert timeline[2]["task_id"] == tid

    def test_only_the_actors_entries_for_that_day(self, client, clock, users, auth_as):
        tid = create(client, title="Shared")["id"]
        client.put(f"/api/v1/tasks/{tid}", json={"status": "Working on it"}, headers=auth_as("Tony"))
        clock.advance(days=1)
        client.put(f"/api/v1/tasks/{tid}", json={"status": "Finished"}, headers=auth_as("Tony"))

        tony = users["Tony"]["id"]
        first = client.get(f"/api/v1/audit-logs/user/{tony}/timeline", params={"date": "2025-03-10"}).json()
        assert [e["label"] for e in first] == ['Started working on "Shared"']

        # the session opened yesterday does not carry into today
        second = client.get(f"/api/v1/audit-logs/user/{tony}/timeline", params={"date": "2025-03-11"}).json()
        assert [e["label"] for e in second] == ['Finished "Shared"']

    def test_last_instant_of_day_belongs_to_that_day(self, client, clock, users):
        clock.now = datetime(2025, 3, 10, 23, 59, 59, 999500)
        create(client, title="Night owl")
        nemo = users["Nemo"]["id"]

        def labels(day):
            res = client.get(f"/api/v1/audit-logs/user/{nemo}/timeline", params={"date": day})
            assert res.status_code == 200
            return [e["label"] for e in res.json()]

        assert labels("2025-03-10") == ['Created: "Night owl"']
        assert labels("2025-03-11") == []
        raw = client.get(f"/api/v1/audit-logs/user/{nemo}", params={"date": "2025-03-10"}).json()
        assert [e["action"] for e in raw] == ["Created"]

    def test_empty_day(self, client, users):
        res = client.get(f"/api/v1/audit-logs/user/{users['Lamim']['id']}/timeline", params={"date": "2024-01-01"})
        assert res.status_code == 200
        assert res.json() == []

    def test_unknown_user(self, client):
        res = client.get("/api/v1/audit-logs/user/999/timeline", params={"date": "2025-03-10"})
        assert res.status_code == 404
        assert res.json()["message"] == "User not found"

    def test_bad_date(self, client, users):
        res = client.get(f"/api/v1/audit-logs/user/{users['Nemo']['id']}/timeline", params={"date": "10/03/2025"})
        assert res.status_code == 422


class TestUserActivity:
    def test_raw_entries_oldest_first(self, client, clock, users):
        tid = create(client, title="Audit me", assigned_to=users["Tony"]["id"])["id"]
        clock.advance(minutes=3)
        client.patch(f"/api/v1/tasks/{tid}/trash")

        res = client.get(f"/api/v1/audit-logs/user/{users['Nemo']['id']}", params={"date": "2025-03-10"})
        assert res.status_code == 200
        logs = res.json()
        assert [e["action"] for e in logs] == ["Created", "Assigned", "Trashed"]
        assert {e["task_title"] for e in logs} == {"Audit me"}
        assert {e["performed_by"] for e in logs} == {"Nemo"}


class TestAuditFailure:
    def test_task_stays_updated_when_audit_write_fails(self, client, stores):
        tid = create(client, title="Before")["id"]
        healthy = stores.audit_logs
        stores.audit_logs = BrokenAuditLog()

        res = client.put(f"/api/v1/tasks/{tid}", json={"title": "After"})
        assert res.status_code == 500
        body = res.json()
        assert body["error"] == "StoreError"
        assert body["message"] == "Task was saved but its audit trail could not be recorded"

        stores.audit_logs = healthy
        assert client.get(f"/api/v1/tasks/{tid}").json()["title"] == "After"
        assert [e["action"] for e in healthy.list_for_task(tid)] == ["Created"]


class TestActorSnapshot:
    def test_rename_does_not_rewrite_history(self, client, stores, users, auth_as):
        tid = create(client, title="Named")["id"]
        stores.users.rename(users["Nemo"]["id"], "Captain")

        # Basic auth goes by name, so read back as another user after the rename.
        res = client.get(f"/api/v1/audit-logs/task/{tid}", headers=auth_as("Tony"))
        assert res.status_code == 200
        entry = res.json()[0]
        assert entry["performed_by"] == "Nemo"
        assert entry["performed_by_id"] == users["Nemo"]["id"]

        task = client.get(f"/api/v1/tasks/{tid}", headers=auth_as("Tony")).json()
        assert task["created_by"]["name"] == "Captain"

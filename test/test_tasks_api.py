import asyncio
from datetime import datetime, timedelta, timezone

from taskflow.models import NoteCreate
from llm.schemas import AISuggestedTask


def task_body(**overrides) -> dict:
    body = {
        "title": "Write report",
        "description": "Q2 numbers",
        "status": "todo",
        "priority": "medium",
        "category": "work",
        "dueDate": "2024-05-03T17:00:00.000Z",
    }
    body.update(overrides)
    return body


def create_task(client, **overrides) -> dict:
    r = client.post("/tasks", json=task_body(**overrides))
    assert r.status_code == 201, r.text
    return r.json()


def seed_suggestion(store, title="Buy milk") -> str:
    note = asyncio.run(store.create_note(NoteCreate(title="Groceries", content="buy milk")))
    rows = asyncio.run(
        store.reconcile_suggestions(note.id, [AISuggestedTask(title=title)], "append")
    )
    return rows[0].id


def test_create_and_get_round_trips_dates(client):
    created = create_task(client, dueDate="2024-05-03T19:00:00+02:00")
    assert created["dueDate"].startswith("2024-05-03T17:00:00")
    assert created["startDate"]  # defaulted to now

    fetched = client.get(f"/tasks/{created['id']}").json()
    assert fetched["dueDate"] == created["dueDate"]
    parsed = datetime.fromisoformat(fetched["dueDate"].replace("Z", "+00:00"))
    assert parsed == datetime(2024, 5, 3, 17, 0, tzinfo=timezone.utc)


def test_create_with_subtasks(client):
    created = create_task(client, subtasks=[{"text": "Draft"}, {"text": "Review", "completed": True}])
    assert [s["text"] for s in created["subtasks"]] == ["Draft", "Review"]
    assert created["subtasks"][1]["completed"] is True
    assert all(s["taskId"] == created["id"] for s in created["subtasks"])


def test_validation_errors_use_envelope(client):
    r = client.post("/tasks", json=task_body(title="", priority="whenever"))
    assert r.status_code == 400
    body = r.json()
    assert body["error"] == "Invalid request data"
    fields = {d["field"] for d in body["details"]}
    assert {"title", "priority"} <= fields


def test_missing_task_is_404(client):
    assert client.get("/tasks/nope").status_code == 404
    assert client.patch("/tasks/nope", json={"status": "todo"}).status_code == 404
    r = client.delete("/tasks/nope")
    assert r.status_code == 404
    assert r.json() == {"error": "Task not found"}


def test_list_is_newest_first_and_filters(client):
    a = create_task(client, title="Buy paint", category="shopping", priority="low")
    b = create_task(client, title="Doctor visit", category="health", priority="high",
                    dueDate="2024-06-01T10:00:00Z")
    c = create_task(client, title="Team sync", description="weekly PAINT review")

    ids = [t["id"] for t in client.get("/tasks").json()]
    assert ids == [c["id"], b["id"], a["id"]]

    by_cat = client.get("/tasks", params=[("category", "shopping"), ("category", "health")]).json()
    assert {t["id"] for t in by_cat} == {a["id"], b["id"]}

    search = client.get("/tasks", params={"search": "paint"}).json()
    assert {t["id"] for t in search} == {a["id"], c["id"]}

    ranged = client.get("/tasks", params={"dateFrom": "2024-05-15T00:00:00Z"}).json()
    assert [t["id"] for t in ranged] == [b["id"]]

    assert client.get("/tasks", params={"status": "archived"}).status_code == 400


def test_date_only_upper_bound_covers_the_whole_day(client):
    due = create_task(client, dueDate="2024-05-03T17:00:00Z")
    create_task(client, title="Later", dueDate="2024-05-04T00:00:00Z")

    same_day = client.get("/tasks", params={"dateTo": "2024-05-03"}).json()
    assert [t["id"] for t in same_day] == [due["id"]]

    exact = client.get("/tasks", params={"dateTo": "2024-05-03T12:00:00Z"}).json()
    assert exact == []

    assert client.get("/tasks", params={"dateTo": "2024-13-40"}).status_code == 400


def test_patch_updates_fields_and_clears_description(client):
    t = create_task(client)
    r = client.patch(f"/tasks/{t['id']}", json={"status": "in_progress", "description": None,
                                               "starred": True})
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "in_progress"
    assert body["description"] is None
    assert body["starred"] is True
    assert body["title"] == t["title"]

    assert client.patch(f"/tasks/{t['id']}", json={"title": None}).status_code == 400


def test_patch_without_subtasks_leaves_them_alone(client):
    t = create_task(client, subtasks=[{"text": "Draft"}, {"text": "Review"}])
    r = client.patch(f"/tasks/{t['id']}", json={"title": "Write the report"})
    assert [s["id"] for s in r.json()["subtasks"]] == [s["id"] for s in t["subtasks"]]


def test_patch_syncs_subtasks(client):
    t = create_task(client, subtasks=[{"text": "Draft"}, {"text": "Review"}])
    draft, review = t["subtasks"]
    r = client.patch(f"/tasks/{t['id']}", json={"subtasks": [
        {"id": draft["id"], "completed": True},
        {"text": "Send", "completed": False},
    ]})
    assert r.status_code == 200
    subs = r.json()["subtasks"]
    assert [s["text"] for s in subs] == ["Draft", "Send"]
    assert subs[0]["id"] == draft["id"] and subs[0]["completed"] is True
    assert review["id"] not in {s["id"] for s in subs}


def test_patch_with_foreign_subtask_changes_nothing(client):
    t = create_task(client, subtasks=[{"text": "Draft"}])
    other = create_task(client, title="Other", subtasks=[{"text": "Elsewhere"}])
    r = client.patch(f"/tasks/{t['id']}", json={
        "title": "Renamed",
        "subtasks": [{"id": other["subtasks"][0]["id"], "completed": True}],
    })
    assert r.status_code == 400
    after = client.get(f"/tasks/{t['id']}").json()
    assert after["title"] == "Write report"
    assert [s["text"] for s in after["subtasks"]] == ["Draft"]


def test_toggle_single_subtask(client):
    t = create_task(client, subtasks=[{"text": "Draft"}])
    sid = t["subtasks"][0]["id"]
    r = client.patch(f"/subtasks/{sid}", json={"completed": True})
    assert r.status_code == 200
    assert r.json()["completed"] is True
    assert client.patch("/subtasks/missing", json={"completed": True}).status_code == 404


def test_stats_follow_status_changes(client):
    t = create_task(client)
    create_task(client, title="Other", status="overdue")
    before = client.get("/tasks/stats").json()
    assert before == {"total": 2, "todo": 1, "in_progress": 0, "completed": 0, "overdue": 1}

    client.patch(f"/tasks/{t['id']}", json={"status": "completed"})
    after = client.get("/tasks/stats").json()
    assert after["todo"] == before["todo"] - 1
    assert after["completed"] == before["completed"] + 1
    assert after["total"] == before["total"]
    assert after["total"] == sum(after[k] for k in ("todo", "in_progress", "completed", "overdue"))


def test_analytics(client):
    create_task(client, status="completed", priority="high")
    create_task(client, category="health")
    create_task(client, status="in_progress")
    body = client.get("/tasks/analytics").json()
    assert body["total"] == 3
    assert body["completionRate"] == 33
    assert body["highPriority"] == 1
    assert body["byCategory"]["health"] == 1


def test_today_orders_by_priority(client):
    day = datetime(2024, 5, 3, tzinfo=timezone.utc)
    low = create_task(client, title="Low", priority="low", dueDate=(day + timedelta(hours=8)).isoformat())
    high = create_task(client, title="High", priority="high", dueDate=(day + timedelta(hours=20)).isoformat())
    create_task(client, title="Tomorrow", priority="high", dueDate=(day + timedelta(days=1)).isoformat())

    r = client.get("/tasks/today", params={"date": "2024-05-03"})
    assert [t["id"] for t in r.json()] == [high["id"], low["id"]]


def test_create_from_suggestion_marks_it_added(client, store):
    sid = seed_suggestion(store)
    t = create_task(client, title="Buy milk", suggestedTaskId=sid)
    assert t["suggestedTaskId"] == sid

    note = asyncio.run(store.list_notes())[0]
    detail = client.get(f"/notes/{note.id}").json()
    suggestion = detail["suggestedTasks"][0]
    assert suggestion["isAdded"] is True
    assert suggestion["createdTask"] == {"id": t["id"], "title": "Buy milk", "status": "todo"}


def test_suggestion_cannot_back_two_tasks(client, store):
    sid = seed_suggestion(store)
    create_task(client, suggestedTaskId=sid)
    r = client.post("/tasks", json=task_body(suggestedTaskId=sid))
    assert r.status_code == 409
    assert len(client.get("/tasks").json()) == 1


def test_unknown_suggestion_is_404(client):
    r = client.post("/tasks", json=task_body(suggestedTaskId="ghost"))
    assert r.status_code == 404
    assert client.get("/tasks").json() == []


def test_delete_task_unlinks_suggestion(client, store):
    sid = seed_suggestion(store)
    t = create_task(client, suggestedTaskId=sid)

    assert client.delete(f"/tasks/{t['id']}").status_code == 204
    assert client.get(f"/tasks/{t['id']}").status_code == 404

    note = asyncio.run(store.list_notes())[0]
    suggestion = client.get(f"/notes/{note.id}").json()["suggestedTasks"][0]
    assert suggestion["isAdded"] is False
    assert suggestion["createdTask"] is None


def test_relink_moves_the_added_flag(client, store):
    first = seed_suggestion(store, "Buy milk")
    note = asyncio.run(store.list_notes())[0]
    second = asyncio.run(
        store.reconcile_suggestions(note.id, [AISuggestedTask(title="Buy eggs")], "append")
    )[1].id
    t = create_task(client, suggestedTaskId=first)

    r = client.patch(f"/tasks/{t['id']}", json={"suggestedTaskId": second})
    assert r.status_code == 200
    flags = {s["id"]: s["isAdded"] for s in client.get(f"/notes/{note.id}").json()["suggestedTasks"]}
    assert flags == {first: False, second: True}


def test_delete_all(client):
    create_task(client, subtasks=[{"text": "Draft"}])
    client.post("/notes", json={"title": "Ideas", "content": "..."})

    assert client.delete("/tasks/all").status_code == 204
    assert client.get("/tasks").json() == []
    assert client.get("/notes").json() == []
    assert client.get("/tasks/stats").json()["total"] == 0

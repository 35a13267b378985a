from __future__ import annotations

from mockcrm.platform.security import Principal, Role


ADMIN = Principal(user_id=9, account_id=100, role=Role.ADMIN)
REP_ONE = Principal(user_id=1, account_id=100, role=Role.SALES_REP)
REP_TWO = Principal(user_id=2, account_id=100, role=Role.SALES_REP)


def test_sales_rep_sees_only_assigned_tasks_in_its_account(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(REP_TWO)

    response = test_client.get("/api/tasks")

    assert [task["id"] for task in response.json()] == [2]


def test_tasks_sort_by_due_date_with_undated_last(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(ADMIN)
    later = test_client.post("/api/tasks", json={"deal_id": 1, "name": "Later", "due_date": "2026-12-01"}).json()
    sooner = test_client.post("/api/tasks", json={"deal_id": 1, "name": "Sooner", "due_date": "2026-11-01"}).json()
    undated = test_client.post("/api/tasks", json={"deal_id": 1, "name": "Someday"}).json()

    response = test_client.get("/api/tasks", params={"deal_id": 1})

    assert [task["id"] for task in response.json()] == [sooner["id"], later["id"], undated["id"], 1]


def test_sales_rep_may_add_tasks_to_any_deal_in_its_account(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(REP_TWO)

    response = test_client.post("/api/tasks", json={"deal_id": 1, "name": "Help out"})

    assert response.status_code == 201
    assert response.json()["user_id"] == 2
    assert response.json()["status"] == "todo"


def test_task_on_other_account_deal_is_not_found(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(REP_TWO)

    response = test_client.post("/api/tasks", json={"deal_id": 3, "name": "Sneak in"})

    assert response.status_code == 404
    assert response.json()["message"] == "deal not found"


def test_assignee_must_belong_to_the_account(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(ADMIN)

    foreign = test_client.post("/api/tasks", json={"deal_id": 1, "name": "Delegate", "user_id": 30})
    colleague = test_client.post("/api/tasks", json={"deal_id": 1, "name": "Delegate", "user_id": 2})

    assert foreign.status_code == 400
    assert foreign.json()["details"] == {"field": "user_id"}
    assert colleague.status_code == 201
    assert colleague.json()["user_id"] == 2


def test_sales_rep_access_to_single_tasks(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(REP_TWO)

    assert test_client.get("/api/tasks/2").status_code == 200
    assert test_client.get("/api/tasks/1").status_code == 403
    assert test_client.get("/api/tasks/3").status_code == 404
    assert test_client.put("/api/tasks/1", json={"status": "done"}).status_code == 403
    assert test_client.delete("/api/tasks/2").status_code == 403


def test_status_update_and_filter(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(REP_TWO)

    updated = test_client.put("/api/tasks/2", json={"status": "in_progress"})
    in_progress = test_client.get("/api/tasks", params={"status": "in_progress"})
    todo = test_client.get("/api/tasks", params={"status": "todo"})

    assert updated.status_code == 200
    assert updated.json()["status"] == "in_progress"
    assert [task["id"] for task in in_progress.json()] == [2]
    assert todo.json() == []


def test_unknown_status_is_a_validation_error(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(REP_TWO)

    filtered = test_client.get("/api/tasks", params={"status": "blocked"})
    updated = test_client.put("/api/tasks/2", json={"status": "blocked"})

    assert filtered.status_code == 400
    assert updated.status_code == 400


def test_admin_deletes_tasks(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(ADMIN)

    response = test_client.delete("/api/tasks/1")

    assert response.json() == {"status": "deleted"}
    assert test_client.get("/api/tasks/1").status_code == 404


def test_blank_task_names_are_rejected(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(REP_TWO)

    created = test_client.post("/api/tasks", json={"deal_id": 2, "name": " "})
    renamed = test_client.put("/api/tasks/2", json={"name": "   "})

    assert created.status_code == 400
    assert renamed.status_code == 400
    assert test_client.get("/api/tasks/2").json()["name"] == "Send proposal"

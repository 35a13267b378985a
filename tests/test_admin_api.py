from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from mockcrm.auth.models import AuthSession
from mockcrm.core.sessions import create_session
from mockcrm.crm.models import Task, User
from mockcrm.platform.security import Principal, Role


ADMIN = Principal(user_id=9, account_id=100, role=Role.ADMIN)
REP = Principal(user_id=2, account_id=100, role=Role.SALES_REP)
FOREIGN_ADMIN = Principal(user_id=30, account_id=200, role=Role.ADMIN)


def test_stage_lifecycle(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(ADMIN)

    created = test_client.post("/api/admin/stages", json={"name": "Negotiation", "order_index": 3})
    stage_id = created.json()["id"]
    updated = test_client.put(f"/api/admin/stages/{stage_id}", json={"order_index": 1, "description": "Haggling"})
    listed = test_client.get("/api/admin/stages")
    deleted = test_client.delete(f"/api/admin/stages/{stage_id}")

    assert created.status_code == 201
    assert created.json()["account_id"] == 100
    assert updated.json()["description"] == "Haggling"
    assert [stage["name"] for stage in listed.json()] == ["Prospecting", "Negotiation"]
    assert deleted.json() == {"status": "deleted"}


def test_stage_names_are_unique_per_account(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(ADMIN)

    duplicate = test_client.post("/api/admin/stages", json={"name": "Prospecting"})
    test_client.post("/api/admin/stages", json={"name": "Closing"})
    renamed_onto = test_client.put("/api/admin/stages/5", json={"name": "Closing"})

    assert duplicate.status_code == 409
    assert renamed_onto.status_code == 409


def test_stage_in_use_cannot_be_deleted(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(ADMIN)

    response = test_client.delete("/api/admin/stages/5")

    assert response.status_code == 409


def test_sales_rep_is_denied_administration(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(REP)

    assert test_client.get("/api/admin/stages").status_code == 403
    assert test_client.post("/api/admin/stages", json={"name": "Mine"}).status_code == 403
    assert test_client.get("/api/admin/users").status_code == 403
    assert test_client.put("/api/admin/users/2", json={"role": "admin"}).status_code == 403


def test_admin_cannot_reach_another_accounts_records(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(FOREIGN_ADMIN)

    assert test_client.put("/api/admin/stages/5", json={"name": "Hijacked"}).status_code == 404
    assert test_client.delete("/api/admin/users/1").status_code == 404
    assert [user["id"] for user in test_client.get("/api/admin/users").json()] == [30]


def test_invite_user(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(ADMIN)

    invited = test_client.post("/api/admin/users", json={"email": "Fresh@Acme.com", "display_name": "Fresh"})
    duplicate = test_client.post("/api/admin/users", json={"email": "fresh@acme.com", "display_name": "Again"})
    bad_role = test_client.post("/api/admin/users", json={"email": "boss@acme.com", "display_name": "Boss", "role": "owner"})

    assert invited.status_code == 201
    assert invited.json()["role"] == "sales_rep"
    assert invited.json()["status"] == "invited"
    assert duplicate.status_code == 409
    assert bad_role.status_code == 400


def test_admin_changes_roles_of_account_users(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(ADMIN)

    promoted = test_client.put("/api/admin/users/2", json={"role": "admin"})
    taken_email = test_client.put("/api/admin/users/2", json={"email": "rep1@acme.com"})

    assert promoted.json()["role"] == "admin"
    assert taken_email.status_code == 409


def test_blank_admin_names_are_rejected(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(ADMIN)

    blank_stage = test_client.post("/api/admin/stages", json={"name": "   "})
    blank_rename = test_client.put("/api/admin/stages/5", json={"name": "\t"})
    blank_invite = test_client.post("/api/admin/users", json={"email": "blank@acme.com", "display_name": "  "})
    blank_display_name = test_client.put("/api/admin/users/2", json={"display_name": " "})
    trimmed = test_client.post("/api/admin/stages", json={"name": "  Closing  "})

    assert blank_stage.status_code == 400
    assert blank_rename.status_code == 400
    assert blank_invite.status_code == 400
    assert blank_invite.json()["details"][0]["loc"] == ["body", "display_name"]
    assert blank_display_name.status_code == 400
    assert trimmed.json()["name"] == "Closing"


def test_local_user_email_cannot_be_cleared(client, crm_data, db_session: Session) -> None:
    test_client, set_principal = client
    set_principal(ADMIN)

    response = test_client.put("/api/admin/users/2", json={"email": None})

    assert response.status_code == 400
    assert response.json()["details"] == {"field": "email"}
    db_session.expire_all()
    assert db_session.get(User, 2).email == "rep2@acme.com"


def test_identity_provider_user_email_can_be_cleared(client, crm_data, make_user) -> None:
    test_client, set_principal = client
    set_principal(ADMIN)
    sso_user_id = make_user(100, email="sso@acme.com", external_id="okta|sso").id

    response = test_client.put(f"/api/admin/users/{sso_user_id}", json={"email": None})

    assert response.status_code == 200
    assert response.json()["email"] is None


def test_admin_cannot_delete_itself(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(ADMIN)

    response = test_client.delete("/api/admin/users/9")

    assert response.status_code == 403
    assert response.json()["message"] == "cannot delete your own user"


def test_user_owning_deals_cannot_be_deleted(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(ADMIN)

    response = test_client.delete("/api/admin/users/1")

    assert response.status_code == 409


def test_deleting_a_user_unassigns_tasks_and_ends_sessions(client, crm_data, db_session: Session, make_user) -> None:
    helper_id = make_user(100, email="helper@acme.com", password="helper-password").id
    db_session.add(Task(deal_id=1, user_id=helper_id, name="Assist"))
    db_session.commit()
    create_session(db_session, helper_id, ttl_minutes=30)
    test_client, set_principal = client
    set_principal(ADMIN)

    response = test_client.delete(f"/api/admin/users/{helper_id}")

    assert response.json() == {"status": "deleted"}
    db_session.expire_all()
    assert db_session.get(User, helper_id) is None
    assert db_session.scalar(select(Task).where(Task.name == "Assist")).user_id is None
    assert db_session.scalar(select(func.count()).select_from(AuthSession)) == 0

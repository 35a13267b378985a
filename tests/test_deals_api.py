from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from mockcrm import audit
from mockcrm.crm.models import Deal, Task
from mockcrm.platform.security import Principal, Role


ADMIN = Principal(user_id=9, account_id=100, role=Role.ADMIN)
REP_ONE = Principal(user_id=1, account_id=100, role=Role.SALES_REP)
REP_TWO = Principal(user_id=2, account_id=100, role=Role.SALES_REP)


def test_sales_rep_lists_only_owned_deals_in_its_account(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(REP_TWO)

    response = test_client.get("/api/deals")

    assert response.status_code == 200
    assert [deal["id"] for deal in response.json()] == [2]


def test_admin_lists_every_deal_in_its_account(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(ADMIN)

    response = test_client.get("/api/deals")

    assert sorted(deal["id"] for deal in response.json()) == [1, 2]


def test_sales_rep_cannot_delete_its_own_deal(client, crm_data, db_session: Session) -> None:
    test_client, set_principal = client
    set_principal(REP_TWO)

    response = test_client.delete("/api/deals/2")

    assert response.status_code == 403
    assert response.json()["code"] == "forbidden"
    assert db_session.get(Deal, 2) is not None


def test_other_owner_is_forbidden_but_other_account_is_not_found(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(REP_TWO)

    same_account = test_client.get("/api/deals/1")
    other_account = test_client.get("/api/deals/3")
    missing = test_client.get("/api/deals/999")

    assert same_account.status_code == 403
    assert other_account.status_code == 404
    assert other_account.json()["message"] == missing.json()["message"]
    assert other_account.json()["code"] == missing.json()["code"] == "not_found"


def test_admin_delete_removes_the_deal_and_its_tasks(client, crm_data, db_session: Session) -> None:
    test_client, set_principal = client
    set_principal(ADMIN)

    response = test_client.delete("/api/deals/1")

    assert response.status_code == 200
    assert response.json() == {"status": "deleted"}
    assert db_session.scalar(select(func.count()).select_from(Task).where(Task.deal_id == 1)) == 0
    assert db_session.scalar(select(func.count()).select_from(Task)) == 2
    assert audit.audit_entries[-1]["action"] == "delete"
    assert audit.audit_entries[-1]["before"]["id"] == 1


def test_sales_rep_always_owns_what_it_creates(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(REP_TWO)

    response = test_client.post("/api/deals", json={"name": "Upsell", "amount": "10.50", "user_id": 1})

    assert response.status_code == 201
    body = response.json()
    assert body["user_id"] == 2
    assert body["account_id"] == 100
    assert Decimal(body["amount"]) == Decimal("10.50")
    assert body["outcome"] is None


def test_admin_assigns_owner_within_its_account(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(ADMIN)

    assigned = test_client.post("/api/deals", json={"name": "Renewal", "user_id": 1, "customer_id": 10, "stage_id": 5})
    foreign_owner = test_client.post("/api/deals", json={"name": "Renewal", "user_id": 30})

    assert assigned.status_code == 201
    assert assigned.json()["user_id"] == 1
    assert foreign_owner.status_code == 400
    assert foreign_owner.json()["details"] == {"field": "user_id"}


def test_references_to_other_accounts_are_rejected(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(REP_ONE)

    customer = test_client.post("/api/deals", json={"name": "Poach", "customer_id": 20})
    stage = test_client.put("/api/deals/1", json={"stage_id": 6})

    assert customer.status_code == 400
    assert customer.json()["details"] == {"field": "customer_id"}
    assert stage.status_code == 400
    assert stage.json()["details"] == {"field": "stage_id"}


def test_sales_rep_update_cannot_reassign_ownership(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(REP_TWO)

    response = test_client.put("/api/deals/2", json={"user_id": 1, "outcome": "won"})

    assert response.status_code == 200
    assert response.json()["user_id"] == 2
    assert response.json()["outcome"] == "won"


def test_update_can_clear_optional_references(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(REP_ONE)

    response = test_client.put("/api/deals/1", json={"customer_id": None, "stage_id": None})

    assert response.status_code == 200
    assert response.json()["customer_id"] is None
    assert response.json()["stage_id"] is None


def test_required_fields_cannot_be_nulled(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(ADMIN)

    response = test_client.put("/api/deals/1", json={"name": None})

    assert response.status_code == 400
    assert response.json()["details"] == {"field": "name"}


def test_outcome_filter(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(ADMIN)
    test_client.put("/api/deals/2", json={"outcome": "lost"})

    lost = test_client.get("/api/deals", params={"outcome": "lost"})
    still_open = test_client.get("/api/deals", params={"outcome": "open"})
    invalid = test_client.get("/api/deals", params={"outcome": "pending"})

    assert [deal["id"] for deal in lost.json()] == [2]
    assert [deal["id"] for deal in still_open.json()] == [1]
    assert invalid.status_code == 400


def test_stage_filter(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(ADMIN)

    response = test_client.get("/api/deals", params={"stage_id": 5})

    assert [deal["id"] for deal in response.json()] == [1]


def test_negative_amount_is_a_validation_error(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(REP_ONE)

    response = test_client.post("/api/deals", json={"name": "Refund", "amount": -1})

    assert response.status_code == 400
    assert response.json()["code"] == "validation_error"


def test_unauthenticated_request_is_rejected(client, crm_data) -> None:
    test_client, _ = client

    response = test_client.get("/api/deals")

    assert response.status_code == 401


def test_blank_deal_names_are_rejected(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(REP_TWO)

    created = test_client.post("/api/deals", json={"name": "   "})
    renamed = test_client.put("/api/deals/2", json={"name": "\n"})
    trimmed = test_client.post("/api/deals", json={"name": "  Expansion  "})

    assert created.status_code == 400
    assert created.json()["details"][0]["loc"] == ["body", "name"]
    assert renamed.status_code == 400
    assert test_client.get("/api/deals/2").json()["name"] == "Deal Two"
    assert trimmed.json()["name"] == "Expansion"

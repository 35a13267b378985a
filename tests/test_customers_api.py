from __future__ import annotations

import pytest

from mockcrm.core.config import get_settings
from mockcrm.platform.security import Principal, Role


ADMIN = Principal(user_id=9, account_id=100, role=Role.ADMIN)
REP = Principal(user_id=2, account_id=100, role=Role.SALES_REP)


def test_members_read_customers_of_their_account(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(REP)

    listed = test_client.get("/api/customers")
    own = test_client.get("/api/customers/10")
    foreign = test_client.get("/api/customers/20")

    assert [customer["id"] for customer in listed.json()] == [10]
    assert own.json()["email"] == "buyer@initech.com"
    assert foreign.status_code == 404


def test_admin_only_policy_blocks_sales_rep_mutations(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(REP)

    assert test_client.post("/api/customers", json={"name": "Hooli"}).status_code == 403
    assert test_client.put("/api/customers/10", json={"phone": "555-0100"}).status_code == 403
    assert test_client.delete("/api/customers/10").status_code == 403


def test_account_members_policy_lets_sales_reps_update(client, crm_data, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CUSTOMER_MUTATION_POLICY", "account_members")
    get_settings.cache_clear()
    test_client, set_principal = client
    set_principal(REP)

    updated = test_client.put("/api/customers/10", json={"phone": "555-0100"})
    created = test_client.post("/api/customers", json={"name": "Hooli"})
    deleted = test_client.delete("/api/customers/10")
    foreign = test_client.put("/api/customers/20", json={"phone": "555-0100"})

    assert updated.status_code == 200
    assert updated.json()["phone"] == "555-0100"
    assert created.status_code == 403
    assert deleted.status_code == 403
    assert foreign.status_code == 404


def test_admin_manages_customers(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(ADMIN)

    created = test_client.post("/api/customers", json={"name": " Hooli ", "email": "ceo@hooli.com"})
    customer_id = created.json()["id"]
    renamed = test_client.put(f"/api/customers/{customer_id}", json={"name": "Hooli XYZ"})
    deleted = test_client.delete(f"/api/customers/{customer_id}")

    assert created.status_code == 201
    assert created.json()["name"] == "Hooli"
    assert created.json()["account_id"] == 100
    assert renamed.json()["name"] == "Hooli XYZ"
    assert deleted.json() == {"status": "deleted"}
    assert test_client.get(f"/api/customers/{customer_id}").status_code == 404


def test_customer_referenced_by_deals_cannot_be_deleted(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(ADMIN)

    response = test_client.delete("/api/customers/10")

    assert response.status_code == 409
    assert response.json()["code"] == "conflict"


def test_invalid_customer_email_is_rejected(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(ADMIN)

    response = test_client.post("/api/customers", json={"name": "Hooli", "email": "not-an-email"})

    assert response.status_code == 400


def test_blank_customer_names_are_rejected(client, crm_data) -> None:
    test_client, set_principal = client
    set_principal(ADMIN)

    created = test_client.post("/api/customers", json={"name": "  "})
    renamed = test_client.put("/api/customers/10", json={"name": "\t"})

    assert created.status_code == 400
    assert renamed.status_code == 400
    assert test_client.get("/api/customers/10").json()["name"] == "Initech"

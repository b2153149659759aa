"""HTTP surface: request validation, status codes and error bodies."""
import pytest


@pytest.fixture
def setup(client):
    company = client.post("/api/v1/companies/", json={"name": "Globex", "country": "Canada", "currency_code": "cad"})
    assert company.status_code == 201
    company_id = company.json()["id"]

    def user(name, role="employee", manager_id=None, department=None):
        response = client.post("/api/v1/users/", json={
            "company_id": company_id,
            "name": name,
            "email": f"{name.lower()}@globex.com",
            "role": role,
            "manager_id": manager_id,
            "department": department,
        })
        assert response.status_code == 201, response.text
        return response.json()

    manager = user("Mona", role="manager")
    employee = user("Ed", manager_id=manager["id"], department="Engineering")
    cfo = user("Carl", role="admin")
    return {"company_id": company_id, "manager": manager, "employee": employee, "cfo": cfo}


def create_expense(client, setup, amount="250.00", category="Travel"):
    response = client.post("/api/v1/expenses/", json={
        "submitter_id": setup["employee"]["id"],
        "company_id": setup["company_id"],
        "amount": amount,
        "category": category,
        "description": "Conference trip",
        "expense_date": "2024-05-01",
    })
    assert response.status_code == 201, response.text
    return response.json()


def create_rule(client, setup, **overrides):
    body = {
        "company_id": setup["company_id"],
        "name": "Big spend",
        "is_manager_approval_required": True,
        "is_sequence_required": True,
        "conditions": [{"kind": "amount_threshold", "params": {"threshold": 100}}],
        "approvers": [{"approver_id": setup["cfo"]["id"], "sequence_order": 1}],
    }
    body.update(overrides)
    return client.post("/api/v1/approval-rules/", json=body)


def test_health(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "running"


def test_company_currency_is_normalized(client, setup):
    response = client.get(f"/api/v1/companies/{setup['company_id']}")
    assert response.json()["currency_code"] == "CAD"
    assert response.json()["user_count"] == 3


def test_user_manager_must_exist_in_company(client, setup):
    response = client.post("/api/v1/users/", json={
        "company_id": setup["company_id"],
        "name": "Nobody",
        "email": "nobody@globex.com",
        "manager_id": 999,
    })
    assert response.status_code == 400
    assert response.json()["detail"]["category"] == "invalid_request"


class TestApprovalRules:

    def test_create_and_fetch(self, client, setup):
        response = create_rule(client, setup)
        assert response.status_code == 201, response.text
        rule = response.json()
        assert rule["conditions"][0]["kind"] == "amount_threshold"
        assert rule["approvers"][0]["approver_name"] == "Carl"

        fetched = client.get(f"/api/v1/approval-rules/{rule['id']}")
        assert fetched.status_code == 200

    def test_bad_condition_is_rejected(self, client, setup):
        response = create_rule(client, setup, conditions=[{"kind": "user_role", "params": {"roles": ["wizard"]}}])
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "VALIDATION_ERROR"

    def test_sequence_orders_must_be_consecutive(self, client, setup):
        response = create_rule(client, setup, approvers=[
            {"approver_id": setup["cfo"]["id"], "sequence_order": 1},
            {"approver_id": setup["manager"]["id"], "sequence_order": 3},
        ])
        assert response.status_code == 400

    def test_unknown_approver(self, client, setup):
        response = create_rule(client, setup, approvers=[{"approver_id": 999, "sequence_order": 1}])
        assert response.status_code == 404

    def test_missing_rule(self, client):
        response = client.get("/api/v1/approval-rules/999")
        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "RULE_NOT_FOUND"

    def test_stats(self, client, setup):
        create_rule(client, setup)
        stats = client.get("/api/v1/approval-rules/stats/overview").json()
        assert stats["total_rules"] == 1
        assert stats["rules_by_sequence"] == {"sequential": 1, "parallel": 0}
        assert stats["rules_with_manager_approval"] == 1


class TestExpenseFlow:

    def test_full_sequential_flow(self, client, setup):
        create_rule(client, setup)
        expense = create_expense(client, setup)
        employee_id = setup["employee"]["id"]

        submitted = client.put(f"/api/v1/expenses/{expense['id']}/submit", json={"submitter_id": employee_id})
        assert submitted.status_code == 200, submitted.text
        assert submitted.json()["status"] == "PENDING_APPROVAL"

        chain = client.get(f"/api/v1/expenses/{expense['id']}/approvals").json()
        approvals = chain["rules"][0]["approvals"]
        manager_task, cfo_task = approvals
        assert manager_task["approver_id"] == setup["manager"]["id"]
        assert chain["actionable_approval_ids"] == [manager_task["id"]]

        early = client.put(f"/api/v1/approvals/{cfo_task['id']}", json={
            "approver_id": setup["cfo"]["id"], "decision": "approve"
        })
        assert early.status_code == 409
        assert early.json()["detail"]["error"] == "OUT_OF_SEQUENCE"

        queue = client.get(f"/api/v1/approvals/pending/{setup['manager']['id']}").json()
        assert queue["total_count"] == 1

        first = client.put(f"/api/v1/approvals/{manager_task['id']}", json={
            "approver_id": setup["manager"]["id"], "decision": "APPROVE"
        })
        assert first.status_code == 200
        assert first.json()["next_approval_ids"] == [cfo_task["id"]]

        final = client.put(f"/api/v1/approvals/{cfo_task['id']}", json={
            "approver_id": setup["cfo"]["id"], "decision": "APPROVE", "comment": "ok"
        })
        assert final.json()["expense_status"] == "APPROVED"

        notifications = client.get(f"/api/v1/notifications/user/{employee_id}").json()
        assert [n["event_type"] for n in notifications["notifications"]] == ["expense_approved"]

        note_id = notifications["notifications"][0]["id"]
        assert client.put(f"/api/v1/notifications/{note_id}/read").json()["is_read"] is True
        assert client.get(f"/api/v1/notifications/user/{employee_id}?unread_only=true").json()["total_count"] == 0

    def test_rejection_requires_comment(self, client, setup):
        create_rule(client, setup, is_manager_approval_required=False)
        expense = create_expense(client, setup)
        client.put(f"/api/v1/expenses/{expense['id']}/submit", json={"submitter_id": setup["employee"]["id"]})
        approval_id = client.get(f"/api/v1/expenses/{expense['id']}/approvals").json()["actionable_approval_ids"][0]

        missing = client.put(f"/api/v1/approvals/{approval_id}", json={
            "approver_id": setup["cfo"]["id"], "decision": "REJECT", "comment": "  "
        })
        assert missing.status_code == 422

        rejected = client.put(f"/api/v1/approvals/{approval_id}", json={
            "approver_id": setup["cfo"]["id"], "decision": "REJECT", "comment": "Over budget"
        })
        assert rejected.status_code == 200
        assert rejected.json()["expense_status"] == "REJECTED"

    def test_wrong_approver_is_forbidden(self, client, setup):
        create_rule(client, setup, is_manager_approval_required=False)
        expense = create_expense(client, setup)
        client.put(f"/api/v1/expenses/{expense['id']}/submit", json={"submitter_id": setup["employee"]["id"]})
        approval_id = client.get(f"/api/v1/expenses/{expense['id']}/approvals").json()["actionable_approval_ids"][0]

        response = client.put(f"/api/v1/approvals/{approval_id}", json={
            "approver_id": setup["manager"]["id"], "decision": "APPROVE"
        })
        assert response.status_code == 403
        assert response.json()["detail"]["category"] == "forbidden"

    def test_submitted_expense_is_frozen(self, client, setup):
        expense = create_expense(client, setup, amount="20.00")
        submitted = client.put(f"/api/v1/expenses/{expense['id']}/submit", json={"submitter_id": setup["employee"]["id"]})
        assert submitted.json()["status"] == "APPROVED"

        again = client.put(f"/api/v1/expenses/{expense['id']}/submit", json={"submitter_id": setup["employee"]["id"]})
        assert again.status_code == 409
        assert again.json()["detail"]["category"] == "state_conflict"

        edit = client.put(f"/api/v1/expenses/{expense['id']}", json={"amount": "30.00"})
        assert edit.status_code == 409
        assert client.delete(f"/api/v1/expenses/{expense['id']}").status_code == 409

    def test_unbuildable_chain_returns_422(self, client, setup):
        create_rule(client, setup, approvers=[{"approver_id": setup["employee"]["id"], "sequence_order": 1}])
        expense = create_expense(client, setup)

        response = client.put(f"/api/v1/expenses/{expense['id']}/submit", json={"submitter_id": setup["employee"]["id"]})
        assert response.status_code == 422
        assert response.json()["detail"]["category"] == "configuration"

        stored = client.get(f"/api/v1/expenses/{expense['id']}").json()
        assert stored["status"] == "PENDING_APPROVAL"
        assert stored["chain_error"]

    def test_retry_requires_submitter_or_admin(self, client, setup):
        create_rule(client, setup, approvers=[{"approver_id": setup["employee"]["id"], "sequence_order": 1}])
        expense = create_expense(client, setup)
        client.put(f"/api/v1/expenses/{expense['id']}/submit", json={"submitter_id": setup["employee"]["id"]})
        url = f"/api/v1/expenses/{expense['id']}/approval-chain/retry"

        forbidden = client.put(url, json={"requested_by": setup["manager"]["id"]})
        assert forbidden.status_code == 403
        assert forbidden.json()["detail"]["category"] == "forbidden"

        # the admin gets past the check; the rule is still broken
        assert client.put(url, json={"requested_by": setup["cfo"]["id"]}).status_code == 422

    def test_mark_all_notifications_read(self, client, setup):
        employee_id = setup["employee"]["id"]
        for amount in ("10.00", "20.00"):
            expense = create_expense(client, setup, amount=amount)
            client.put(f"/api/v1/expenses/{expense['id']}/submit", json={"submitter_id": employee_id})
        assert client.get(f"/api/v1/notifications/user/{employee_id}").json()["unread_count"] == 2

        response = client.put(f"/api/v1/notifications/user/{employee_id}/read-all")
        assert response.status_code == 200
        assert response.json() == {"user_id": employee_id, "marked_count": 2}
        assert client.get(f"/api/v1/notifications/user/{employee_id}").json()["unread_count"] == 0

    def test_rule_in_use_cannot_be_deleted(self, client, setup):
        rule = create_rule(client, setup).json()
        expense = create_expense(client, setup)
        client.put(f"/api/v1/expenses/{expense['id']}/submit", json={"submitter_id": setup["employee"]["id"]})

        response = client.delete(f"/api/v1/approval-rules/{rule['id']}")
        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "RULE_IN_USE"

    def test_expense_stats(self, client, setup):
        create_expense(client, setup, amount="10.00")
        create_expense(client, setup, amount="15.50")
        stats = client.get(f"/api/v1/expenses/stats/summary?company_id={setup['company_id']}").json()
        assert stats["draft_expenses"] == 2
        assert float(stats["total_amount"]) == pytest.approx(25.5)

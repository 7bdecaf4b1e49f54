from datetime import date, timedelta

import pytest
from starlette.websockets import WebSocketDisconnect


def create_account(client, name, email, role, admin_headers=None):
    register_response = client.post(
        "/api/auth/register",
        json={"name": name, "email": email, "password": "password123", "role": role},
        headers=admin_headers,
    )
    assert register_response.status_code == 201
    login_response = client.post(
        "/api/auth/login",
        json={"email": email, "password": "password123", "role": role},
    )
    assert login_response.status_code == 200
    return register_response.json(), {"Authorization": f"Bearer {login_response.json()['access_token']}"}


def submit_leave(client, headers, offset_days):
    start = (date.today() + timedelta(days=offset_days)).isoformat()
    response = client.post(
        "/api/leave-requests",
        json={"start_date": start, "end_date": start, "leave_type": "personal", "reason": "Errands"},
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()


def test_manager_inbox_read_and_delete(client):
    _, admin_headers = create_account(client, "Ada Admin", "ada@example.com", "admin")
    _, manager_headers = create_account(client, "Mona Manager", "mona@example.com", "manager", admin_headers)
    _, employee_headers = create_account(client, "Erin Employee", "erin@example.com", "employee")

    submit_leave(client, employee_headers, 2)
    submit_leave(client, employee_headers, 5)

    inbox = client.get("/api/notifications", headers=manager_headers)
    assert inbox.status_code == 200
    items = inbox.json()
    assert len(items) == 2
    assert all(item["is_read"] is False for item in items)
    assert all(item["notification_type"] == "leave_request" for item in items)

    first_id = items[0]["id"]
    read_response = client.put(f"/api/notifications/{first_id}/read", headers=manager_headers)
    assert read_response.status_code == 200
    assert read_response.json()["is_read"] is True

    unread = client.get("/api/notifications", params={"unread_only": True}, headers=manager_headers)
    assert [item["id"] for item in unread.json()] == [items[1]["id"]]

    mark_all = client.put("/api/notifications/mark-all-read", headers=manager_headers)
    assert mark_all.status_code == 200
    assert mark_all.json() == {"updated": 1}

    unread = client.get("/api/notifications", params={"unread_only": True}, headers=manager_headers)
    assert unread.json() == []

    delete_response = client.delete(f"/api/notifications/{first_id}", headers=manager_headers)
    assert delete_response.status_code == 200
    remaining = client.get("/api/notifications", headers=manager_headers).json()
    assert [item["id"] for item in remaining] == [items[1]["id"]]


def test_requester_receives_status_update(client):
    _, admin_headers = create_account(client, "Ada Admin", "ada@example.com", "admin")
    _, manager_headers = create_account(client, "Mona Manager", "mona@example.com", "manager", admin_headers)
    _, employee_headers = create_account(client, "Erin Employee", "erin@example.com", "employee")

    created = submit_leave(client, employee_headers, 3)
    review = client.put(
        f"/api/leave-requests/{created['id']}",
        json={"status": "approved"},
        headers=manager_headers,
    )
    assert review.status_code == 200
    assert review.json()["notifications"]["failed"] == []

    updates = client.get(
        "/api/notifications",
        params={"notification_type": "leave_status_update"},
        headers=employee_headers,
    )
    assert updates.status_code == 200
    items = updates.json()
    assert len(items) == 1
    assert items[0]["title"] == "Leave Request Approved"
    assert items[0]["related_request_id"] == created["id"]

    requests_only = client.get(
        "/api/notifications",
        params={"notification_type": "leave_request"},
        headers=employee_headers,
    )
    assert requests_only.json() == []


def test_notifications_of_other_users_are_not_found(client):
    _, admin_headers = create_account(client, "Ada Admin", "ada@example.com", "admin")
    _, manager_headers = create_account(client, "Mona Manager", "mona@example.com", "manager", admin_headers)
    _, employee_headers = create_account(client, "Erin Employee", "erin@example.com", "employee")
    submit_leave(client, employee_headers, 2)

    manager_item = client.get("/api/notifications", headers=manager_headers).json()[0]

    read_attempt = client.put(f"/api/notifications/{manager_item['id']}/read", headers=employee_headers)
    assert read_attempt.status_code == 404
    assert read_attempt.json()["error"] == "not_found"

    delete_attempt = client.delete(f"/api/notifications/{manager_item['id']}", headers=employee_headers)
    assert delete_attempt.status_code == 404

    still_unread = client.get("/api/notifications", headers=manager_headers).json()[0]
    assert still_unread["is_read"] is False


def test_mark_all_read_with_empty_inbox(client):
    _, employee_headers = create_account(client, "Erin Employee", "erin@example.com", "employee")
    response = client.put("/api/notifications/mark-all-read", headers=employee_headers)
    assert response.status_code == 200
    assert response.json() == {"updated": 0}


def test_websocket_rejects_missing_token(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/api/notifications/ws") as websocket:
            websocket.receive_json()


def test_websocket_greets_authenticated_user(client):
    user, headers = create_account(client, "Erin Employee", "erin@example.com", "employee")
    token = headers["Authorization"].split(" ", 1)[1]
    with client.websocket_connect(f"/api/notifications/ws?token={token}") as websocket:
        assert websocket.receive_json() == {"event": "connected", "user_id": user["id"]}
        websocket.send_text("ping")
        assert websocket.receive_json() == {"event": "pong"}

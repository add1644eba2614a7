from uuid import uuid4

from luckyhub.db.models import BodyMetric, Message


def test_admin_routes_require_admin(client, register_user) -> None:
    member = register_user()
    assert client.get("/admin/users").status_code == 401
    assert client.get("/admin/users", headers=member["headers"]).status_code == 403
    assert client.get("/admin/groups", headers=member["headers"]).status_code == 403


def test_delete_user_does_not_cascade(client, register_user, admin, bot_id, db_session) -> None:
    member = register_user()
    client.post(
        "/api/body-metrics",
        headers=member["headers"],
        json={"measured_at": "2024-02-02", "weight_kg": 60},
    )
    sent = client.post("/api/chat/send", headers=member["headers"], json={"to": admin["id"], "content": "bye"})
    assert sent.status_code == 201

    deleted = client.delete(f"/admin/users/{member['id']}", headers=admin["headers"])
    assert deleted.status_code == 204

    listing = client.get("/admin/users", headers=admin["headers"])
    assert member["id"] not in {row["id"] for row in listing.json()}
    chat_users = client.get("/api/chat/users", headers=admin["headers"])
    assert member["id"] not in {row["id"] for row in chat_users.json()}

    assert db_session.query(BodyMetric).filter(BodyMetric.user_id == member["id"]).count() == 1
    assert db_session.query(Message).filter(Message.sender_id == member["id"]).count() == 1

    # The orphaned message is still listed, just without a sender name.
    history = client.get(f"/api/chat/history/{member['id']}", headers=admin["headers"]).json()
    assert [(row["content"], row["sender_name"]) for row in history] == [("bye", None)]

    assert client.delete(f"/admin/users/{member['id']}", headers=admin["headers"]).status_code == 404


def test_admin_cannot_delete_self_or_bot(client, admin, bot_id) -> None:
    assert client.delete(f"/admin/users/{admin['id']}", headers=admin["headers"]).status_code == 400
    assert client.delete(f"/admin/users/{bot_id}", headers=admin["headers"]).status_code == 400


def test_admin_updates_user_profile_and_password(client, register_user, admin) -> None:
    member = register_user()
    response = client.put(
        f"/admin/users/{member['id']}",
        headers=admin["headers"],
        json={"fullname": "Renamed Member", "height": 171.5, "password": "NewPass456"},
    )
    assert response.status_code == 200
    assert response.json()["fullname"] == "Renamed Member"
    assert response.json()["height"] == 171.5

    login = client.post("/dangnhap", json={"username": member["username"], "password": "NewPass456"})
    assert login.status_code == 200

    missing_group = client.put(
        f"/admin/users/{member['id']}", headers=admin["headers"], json={"group_id": 999999}
    )
    assert missing_group.status_code == 404


def test_group_lifecycle(client, register_user, admin) -> None:
    headers = admin["headers"]
    name = f"Coaches {uuid4().hex[:6]}"
    created = client.post(
        "/admin/groups",
        headers=headers,
        json={"name": name, "description": "Nutrition coaches", "can_message": True, "can_note": True},
    )
    assert created.status_code == 201
    group = created.json()
    assert set(group["capabilities"]) == {"message", "note"}

    duplicate = client.post("/admin/groups", headers=headers, json={"name": name})
    assert duplicate.status_code == 409

    member = register_user()
    other = register_user()
    moved = client.put(f"/admin/users/{member['id']}", headers=headers, json={"group_id": group["id"]})
    assert moved.status_code == 200
    assert moved.json()["group"]["name"] == name

    # Members of a group with the message permission can chat with other members.
    chat = client.post("/api/chat/send", headers=member["headers"], json={"to": other["id"], "content": "hi"})
    assert chat.status_code == 201

    in_use = client.delete(f"/admin/groups/{group['id']}", headers=headers)
    assert in_use.status_code == 409

    updated = client.put(
        f"/admin/groups/{group['id']}",
        headers=headers,
        json={"name": name, "description": "Read only", "can_message": False},
    )
    assert updated.status_code == 200
    assert updated.json()["capabilities"] == []

    groups = client.get("/admin/groups", headers=headers).json()
    member_group = next(row for row in groups if row["name"] == "Members")
    client.put(f"/admin/users/{member['id']}", headers=headers, json={"group_id": member_group["id"]})

    assert client.delete(f"/admin/groups/{group['id']}", headers=headers).status_code == 204
    assert client.delete(f"/admin/groups/{group['id']}", headers=headers).status_code == 404


def test_default_groups_are_protected(client, admin) -> None:
    groups = client.get("/admin/groups", headers=admin["headers"]).json()
    names = {row["name"]: row["id"] for row in groups}
    assert {"Administrators", "Members"} <= set(names)

    assert client.delete(f"/admin/groups/{names['Members']}", headers=admin["headers"]).status_code == 400
    renamed = client.put(
        f"/admin/groups/{names['Members']}", headers=admin["headers"], json={"name": "Everyone"}
    )
    assert renamed.status_code == 400
    lockout = client.put(
        f"/admin/groups/{names['Administrators']}",
        headers=admin["headers"],
        json={"name": "Administrators", "can_administer": False},
    )
    assert lockout.status_code == 400


def test_admin_cannot_move_self_out_of_admin_group(client, admin) -> None:
    groups = client.get("/admin/groups", headers=admin["headers"]).json()
    member_group = next(row for row in groups if row["name"] == "Members")

    response = client.put(
        f"/admin/users/{admin['id']}", headers=admin["headers"], json={"group_id": member_group["id"]}
    )
    assert response.status_code == 400
    assert client.get("/admin/users", headers=admin["headers"]).status_code == 200


def test_admin_routes_reject_oversized_ids(client, admin) -> None:
    huge = 99999999999999999999999
    assert client.delete(f"/admin/users/{huge}", headers=admin["headers"]).status_code == 422
    assert client.put(f"/admin/groups/{huge}", headers=admin["headers"], json={"name": "X"}).status_code == 422

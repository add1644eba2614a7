from uuid import uuid4

from conftest import PASSWORD


def _register_payload(username: str) -> dict:
    return {
        "username": username,
        "password": PASSWORD,
        "fullname": "Lan Nguyen",
        "birthday": "1992-03-04",
        "height": 160,
        "gender": "Female",
    }


def test_register_same_username_twice_conflicts(client) -> None:
    username = f"dup_{uuid4().hex[:8]}"
    first = client.post("/dangky", json=_register_payload(username))
    assert first.status_code == 201

    second = client.post("/dangky", json=_register_payload(username))
    assert second.status_code == 409
    assert "exists" in second.json()["detail"].lower()


def test_register_username_is_case_insensitive(client) -> None:
    base = f"case_{uuid4().hex[:8]}"
    assert client.post("/dangky", json=_register_payload(base.upper())).status_code == 201
    assert client.post("/dangky", json=_register_payload(base)).status_code == 409

    login = client.post("/dangnhap", json={"username": base.upper(), "password": PASSWORD})
    assert login.status_code == 200
    assert login.json()["user"]["username"] == base


def test_register_missing_fields_rejected(client) -> None:
    response = client.post("/dangky", json={"username": f"x_{uuid4().hex[:6]}", "password": PASSWORD})
    assert response.status_code == 422


def test_login_returns_member_group(client, register_user) -> None:
    member = register_user()
    user = member["user"]
    assert user["username"] == member["username"]
    assert "password_hash" not in user
    assert user["group"]["name"] == "Members"
    assert user["group"]["capabilities"] == []


def test_login_failures_are_indistinguishable(client, register_user) -> None:
    member = register_user()
    wrong_password = client.post(
        "/dangnhap", json={"username": member["username"], "password": "not-the-password"}
    )
    unknown_user = client.post(
        "/dangnhap", json={"username": f"ghost_{uuid4().hex[:8]}", "password": PASSWORD}
    )
    assert wrong_password.status_code == 400
    assert unknown_user.status_code == 400
    assert wrong_password.json() == unknown_user.json()


def test_admin_reset_grants_admin_capabilities(client, admin) -> None:
    capabilities = admin["user"]["group"]["capabilities"]
    assert admin["user"]["group"]["name"] == "Administrators"
    assert set(capabilities) == {"message", "note", "administer"}

    # A second reset is harmless and keeps the same account.
    again = client.get("/adminreset")
    assert again.status_code == 200
    login = client.post("/dangnhap", json={"username": "admin", "password": "admin"})
    assert login.json()["user"]["id"] == admin["id"]


def test_bot_account_cannot_log_in(client, bot_id) -> None:
    response = client.post("/dangnhap", json={"username": "hlvai", "password": "hlvai"})
    assert response.status_code == 400


def test_health(client) -> None:
    assert client.get("/health").json() == {"status": "ok"}

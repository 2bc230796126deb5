import pytest

from permissions import PERMISSION_FLAGS

EMAIL = "agent@example.com"
PASSWORD = "S3cret!pass"


def _login(client, email=EMAIL, password=PASSWORD):
    return client.post("/api/auth/login", json={"email": email, "password": password})


def test_register_returns_tokens_without_password(account):
    assert account["user"]["email"] == EMAIL
    assert account["user"]["role"] == "User"
    assert "password" not in account["user"]
    assert account["token"] and account["refreshToken"]


def test_register_rejects_taken_email(client, account):
    resp = client.post("/api/auth/register", json={"name": "Copy", "email": EMAIL, "password": "x"})
    assert resp.status_code == 400


def test_register_requires_all_fields(client):
    assert client.post("/api/auth/register", json={"name": "", "email": "a@b.c", "password": "x"}).status_code == 400
    assert client.post("/api/auth/register", json={"email": "a@b.c"}).status_code == 400


def test_login(client, account):
    resp = _login(client)
    assert resp.status_code == 200
    assert resp.json()["user"]["id"] == account["user"]["id"]

    assert _login(client, password="wrong").status_code == 401
    assert _login(client, email="nobody@example.com").status_code == 401


def test_refresh_issues_a_new_access_token(client, account):
    resp = client.post("/api/auth/refresh", json={"refreshToken": account["refreshToken"]})
    assert resp.status_code == 200
    body = resp.json()
    assert body["user"]["email"] == EMAIL

    headers = {"Authorization": f"Bearer {body['accessToken']}"}
    assert client.get("/api/leads", headers=headers).status_code == 200


def test_refresh_rejects_access_tokens(client, account):
    assert client.post("/api/auth/refresh", json={"refreshToken": account["token"]}).status_code == 401


def test_refresh_token_is_not_an_access_token(client, account):
    headers = {"Authorization": f"Bearer {account['refreshToken']}"}
    assert client.get("/api/leads", headers=headers).status_code == 401


def test_password_reset_flow(client, db, sender, account):
    assert client.post("/api/auth/forgot-password", json={"email": EMAIL}).json() == {"success": True}

    mail = sender.outbox[-1]
    assert mail["to"] == [EMAIL]
    assert mail["subject"] == "Password Reset Request"
    token = db["passwordResetTokens"].find_one()["token"]
    assert token in mail["text"]

    check = client.post("/api/auth/check-token", json={"token": token, "type": "password-reset"})
    assert check.json() == {"valid": True}

    resp = client.post("/api/auth/reset-password", json={"token": token, "password": "N3w!password"})
    assert resp.status_code == 200
    assert db["passwordResetTokens"].count_documents({}) == 0

    assert _login(client).status_code == 401
    assert _login(client, password="N3w!password").status_code == 200

    # Tokens are single use
    again = client.post("/api/auth/reset-password", json={"token": token, "password": "other"})
    assert again.status_code == 400


def test_forgot_password_for_unknown_email_looks_the_same(client, db, sender):
    assert client.post("/api/auth/forgot-password", json={"email": "ghost@example.com"}).json() == {"success": True}
    assert sender.outbox == []
    assert db["passwordResetTokens"].count_documents({}) == 0


def test_reset_rejects_tokens_of_another_type(client, account):
    resp = client.post("/api/auth/reset-password", json={"token": account["token"], "password": "x"})
    assert resp.status_code == 400
    resp = client.post("/api/auth/check-token", json={"token": "garbage", "type": "email-verification"})
    assert resp.status_code == 400


def test_email_change_requires_verification(client, db, sender, auth_headers):
    resp = client.put(
        "/api/auth/update-profile",
        json={"email": "new@example.com", "role": "admin", "password": "ignored"},
        headers=auth_headers,
    )
    user = resp.json()["user"]
    assert user["email"] == "new@example.com"
    assert user["emailVerified"] is False
    assert user["role"] == "User"

    assert sender.outbox[-1]["to"] == ["new@example.com"]
    token = db["emailVerificationTokens"].find_one()["token"]
    assert client.post("/api/auth/verify-email", json={"token": token}).json() == {"success": True}
    assert db["users"].find_one({"email": "new@example.com"})["emailVerified"] is True

    resend = client.post("/api/auth/resend-verification", json={"email": "new@example.com"})
    assert resend.status_code == 400


def test_check_password():
    from security import password_strength

    assert password_strength("S3cret!pass")["isStrong"] is True
    weak = password_strength("short")
    assert weak["isStrong"] is False
    assert weak["hasMinLength"] is False
    assert weak["hasLowerCase"] is True


def test_check_password_route(client):
    resp = client.post("/api/auth/check-password", json={"password": "abcdefgh"})
    assert resp.json()["isStrong"] is False
    assert resp.json()["hasNumbers"] is False


def test_check_email_never_reveals_accounts(client, account):
    assert client.post("/api/auth/check-email", json={"email": EMAIL}).json() == {"success": True}
    assert client.post("/api/auth/check-email", json={"email": "x@y.z"}).json() == {"success": True}


@pytest.mark.parametrize("role, granted", [("user", False), ("admin", True)])
def test_check_permissions(client, auth_headers, account, role, granted):
    client.patch(f"/api/users/{account['user']['id']}", json={"role": role}, headers=auth_headers)
    resp = client.get("/api/auth/check-permissions", headers=auth_headers).json()
    assert resp["permissions"] == {flag: granted for flag in PERMISSION_FLAGS}


def test_delete_account(client, db, auth_headers):
    wrong = client.request("DELETE", "/api/auth/delete-account", json={"password": "nope"}, headers=auth_headers)
    assert wrong.status_code == 400

    resp = client.request("DELETE", "/api/auth/delete-account", json={"password": PASSWORD}, headers=auth_headers)
    assert resp.json() == {"success": True}
    assert db["users"].count_documents({}) == 0
    assert _login(client).status_code == 401


def test_profile_update_cannot_reach_permissions(client, auth_headers):
    resp = client.put(
        "/api/auth/update-profile",
        json={"permissions.settings": True, "permissions.mls": True},
        headers=auth_headers,
    )
    assert resp.status_code == 400

    resp = client.put("/api/auth/update-profile", json={"permissions": {"leads": True}, "phone": "555"}, headers=auth_headers)
    assert resp.json()["user"]["phone"] == "555"

    permissions = client.get("/api/auth/check-permissions", headers=auth_headers).json()["permissions"]
    assert not any(permissions.values())


def test_check_session_and_role(client, auth_headers, account):
    session = client.get("/api/auth/check-session", headers=auth_headers).json()
    assert session["user"]["email"] == EMAIL
    assert "password" not in session["user"]
    assert session["role"] == "User"

    assert client.get("/api/auth/check-role", headers=auth_headers).json() == {"role": "User", "isAdmin": False}
    client.patch(f"/api/users/{account['user']['id']}", json={"role": "admin"}, headers=auth_headers)
    assert client.get("/api/auth/check-role", headers=auth_headers).json() == {"role": "Administrator", "isAdmin": True}

    assert client.get("/api/auth/check-session").status_code == 401


def test_logout(client):
    assert client.post("/api/auth/logout").json() == {"success": True}

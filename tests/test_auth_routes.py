"""End-to-end flows over the /auth HTTP surface."""

import time
from datetime import timedelta

import pytest

from conftest import bearer, login, login_tokens
from core.clock import utcnow
from core.security import issue_token
from models.audit_log import AuditLog
from models.enums import Role, TokenKind
from models.refresh_session import RefreshSession
from models.user import User


def _register(client, name="alice", email="a@x.com", password="secret1"):
    return client.post("/auth/register", json={"name": name, "email": email, "password": password})


def _verify(client, mailer, email="a@x.com"):
    resp = client.post("/auth/verify-email", json={"token": mailer.last_token(email)})
    assert resp.status_code == 200, resp.text
    return resp


# ---------------------------------------------------------------------------
# Register
# ---------------------------------------------------------------------------


class TestRegister:
    def test_register_returns_user_and_tokens(self, client, mailer):
        resp = _register(client)
        assert resp.status_code == 201
        body = resp.json()
        assert body["success"] is True

        user = body["data"]["user"]
        assert user["name"] == "alice"
        assert user["email"] == "a@x.com"
        assert user["role"] == "user"
        assert user["isEmailVerified"] is False
        for secret in ("password", "passwordHash", "sessions", "passwordResetTokenHash"):
            assert secret not in user

        tokens = body["data"]["tokens"]
        assert set(tokens) == {"accessToken", "refreshToken", "expiresIn"}
        assert client.get("/auth/me", headers=bearer(tokens["accessToken"])).status_code == 200

        assert mailer.outbox[0]["to"] == "a@x.com"
        assert "/verify-email?token=" in mailer.outbox[0]["text"]

    def test_duplicate_name_is_reported(self, client):
        assert _register(client, "alice", "a@x.com", "secret1").status_code == 201
        resp = _register(client, "alice", "b@y.com", "secret2")
        assert resp.status_code == 409
        assert resp.json() == {"success": False, "message": "Name already in use"}

    def test_duplicate_email_is_case_insensitive(self, client):
        _register(client, "alice", "a@x.com")
        resp = _register(client, "alice2", "A@X.com ")
        assert resp.status_code == 409
        assert resp.json()["message"] == "Email already in use"

    def test_missing_fields(self, client):
        resp = client.post("/auth/register", json={"name": "alice"})
        assert resp.status_code == 400
        assert resp.json()["message"] == "Name, email and password are required"

    def test_field_validation(self, client):
        resp = _register(client, "a", "not-an-email", "123")
        assert resp.status_code == 400
        errors = resp.json()["errors"]
        assert len(errors) == 3
        assert any(e.startswith("name:") for e in errors)
        assert any(e.startswith("email:") for e in errors)
        assert any(e.startswith("password:") for e in errors)

    def test_overlong_password(self, client, db):
        resp = _register(client, password="p" * 5000)
        assert resp.status_code == 400
        assert resp.json()["errors"] == ["password: must be at most 128 characters"]
        assert db.query(User).count() == 0

    def test_mail_failure_does_not_block_registration(self, client, mailer, db):
        mailer.fail = True
        assert _register(client).status_code == 201
        assert db.query(User).filter_by(name="alice").one()

    def test_malformed_json_body(self, client):
        resp = client.post(
            "/auth/register", content="{not json", headers={"Content-Type": "application/json"}
        )
        assert resp.status_code == 400
        assert resp.json()["success"] is False


# ---------------------------------------------------------------------------
# Login / lockout
# ---------------------------------------------------------------------------


class TestLogin:
    def test_login_by_name(self, client, make_user, db):
        user = make_user(name="bob")
        resp = login(client, "bob", "secret1")
        assert resp.status_code == 200
        assert resp.json()["data"]["user"]["id"] == user.id

        db.expire_all()
        assert user.last_login is not None
        assert user.last_login_ip
        assert len(user.sessions) == 1
        assert db.query(AuditLog).filter_by(action="user_login").count() == 1

    def test_login_by_email_is_not_supported(self, client, make_user):
        make_user(name="bob", email="bob@example.com")
        assert login(client, "bob@example.com", "secret1").status_code == 401

    def test_unknown_name_and_wrong_password_look_alike(self, client, make_user):
        make_user(name="bob")
        unknown = login(client, "nobody", "secret1")
        wrong = login(client, "bob", "wrong-password")
        assert unknown.status_code == wrong.status_code == 401
        assert unknown.json() == wrong.json()

    def test_missing_credentials(self, client):
        assert client.post("/auth/login", json={"name": "bob"}).status_code == 400

    def test_disabled_account(self, client, make_user, db):
        user = make_user(name="bob")
        user.is_active = False
        db.commit()
        assert login(client, "bob", "secret1").status_code == 403

    def test_lockout_after_five_failures(self, client, make_user):
        """Scenario B: the sixth attempt is refused even with the right password."""
        make_user(name="bob")
        for _ in range(5):
            assert login(client, "bob", "wrong-password").status_code == 401

        resp = login(client, "bob", "secret1")
        assert resp.status_code == 423
        assert resp.json()["success"] is False

    def test_success_resets_counter(self, client, make_user, db):
        user = make_user(name="bob")
        for _ in range(4):
            login(client, "bob", "wrong-password")
        assert login(client, "bob", "secret1").status_code == 200

        db.expire_all()
        assert user.login_attempts == 0
        for _ in range(4):
            login(client, "bob", "wrong-password")
        assert login(client, "bob", "secret1").status_code == 200

    def test_lock_expires(self, client, make_user, db):
        user = make_user(name="bob")
        for _ in range(5):
            login(client, "bob", "wrong-password")
        db.expire_all()
        user.lock_until = utcnow() - timedelta(seconds=1)
        db.commit()
        assert login(client, "bob", "secret1").status_code == 200


# ---------------------------------------------------------------------------
# Refresh / logout
# ---------------------------------------------------------------------------


class TestRefresh:
    def test_refresh_rotates(self, client, make_user):
        """Scenario C: a spent refresh token cannot be replayed."""
        make_user(name="bob")
        first = login_tokens(client, "bob", "secret1")

        resp = client.post("/auth/refresh-token", json={"refreshToken": first["refreshToken"]})
        assert resp.status_code == 200
        second = resp.json()["data"]["tokens"]
        assert second["refreshToken"] != first["refreshToken"]

        replay = client.post("/auth/refresh-token", json={"refreshToken": first["refreshToken"]})
        assert replay.status_code == 401

        again = client.post("/auth/refresh-token", json={"refreshToken": second["refreshToken"]})
        assert again.status_code == 200

    def test_session_count_is_stable_across_refreshes(self, client, make_user, db):
        user = make_user(name="bob")
        token = login_tokens(client, "bob", "secret1")["refreshToken"]
        for _ in range(3):
            resp = client.post("/auth/refresh-token", json={"refreshToken": token})
            token = resp.json()["data"]["tokens"]["refreshToken"]
        assert db.query(RefreshSession).filter_by(user_id=user.id).count() == 1

    def test_access_token_is_not_a_refresh_token(self, client, make_user):
        make_user(name="bob")
        tokens = login_tokens(client, "bob", "secret1")
        resp = client.post("/auth/refresh-token", json={"refreshToken": tokens["accessToken"]})
        assert resp.status_code == 401

    def test_validly_signed_but_unknown_token(self, client, make_user):
        user = make_user(name="bob")
        token = issue_token(TokenKind.REFRESH, {"id": user.id, "email": user.email, "sid": "x"})
        resp = client.post("/auth/refresh-token", json={"refreshToken": token})
        assert resp.status_code == 401

    def test_missing_token(self, client):
        assert client.post("/auth/refresh-token", json={}).status_code == 401

    def test_sixth_login_evicts_oldest_session(self, client, make_user):
        make_user(name="bob")
        logins = [login_tokens(client, "bob", "secret1") for _ in range(6)]

        oldest = client.post("/auth/refresh-token", json={"refreshToken": logins[0]["refreshToken"]})
        assert oldest.status_code == 401
        newest = client.post("/auth/refresh-token", json={"refreshToken": logins[-1]["refreshToken"]})
        assert newest.status_code == 200


class TestLogout:
    def test_logout_removes_only_that_session(self, client, make_user):
        make_user(name="bob")
        phone = login_tokens(client, "bob", "secret1")
        laptop = login_tokens(client, "bob", "secret1")

        resp = client.post(
            "/auth/logout",
            json={"refreshToken": phone["refreshToken"]},
            headers=bearer(phone["accessToken"]),
        )
        assert resp.status_code == 200

        assert client.post("/auth/refresh-token", json={"refreshToken": phone["refreshToken"]}).status_code == 401
        assert client.post("/auth/refresh-token", json={"refreshToken": laptop["refreshToken"]}).status_code == 200

    def test_logout_is_idempotent(self, client, make_user):
        make_user(name="bob")
        tokens = login_tokens(client, "bob", "secret1")
        headers = bearer(tokens["accessToken"])

        assert client.post("/auth/logout", headers=headers).status_code == 200
        body = {"refreshToken": tokens["refreshToken"]}
        assert client.post("/auth/logout", json=body, headers=headers).status_code == 200
        assert client.post("/auth/logout", json=body, headers=headers).status_code == 200
        assert client.post("/auth/logout", json={"refreshToken": "junk"}, headers=headers).status_code == 200

    def test_logout_requires_access_token(self, client):
        assert client.post("/auth/logout").status_code == 401

    def test_logout_all(self, client, make_user, db):
        user = make_user(name="bob")
        sessions = [login_tokens(client, "bob", "secret1") for _ in range(3)]

        resp = client.post("/auth/logout-all", headers=bearer(sessions[0]["accessToken"]))
        assert resp.status_code == 200
        assert db.query(RefreshSession).filter_by(user_id=user.id).count() == 0
        for tokens in sessions:
            assert client.post("/auth/refresh-token", json={"refreshToken": tokens["refreshToken"]}).status_code == 401


# ---------------------------------------------------------------------------
# Access guard
# ---------------------------------------------------------------------------


class TestAccessGuard:
    def test_missing_header(self, client):
        resp = client.get("/auth/me")
        assert resp.status_code == 401
        assert resp.json() == {"success": False, "message": "Access token not provided"}

    def test_garbage_token(self, client):
        assert client.get("/auth/me", headers=bearer("garbage")).status_code == 401

    def test_expired_access_token(self, client, make_user):
        user = make_user(name="bob")
        token = issue_token(
            TokenKind.ACCESS,
            {"id": user.id, "email": user.email, "role": "user"},
            ttl=timedelta(seconds=-1),
        )
        resp = client.get("/auth/me", headers=bearer(token))
        assert resp.status_code == 401
        assert "expired" in resp.json()["message"]

    def test_refresh_token_rejected_as_bearer(self, client, make_user):
        make_user(name="bob")
        tokens = login_tokens(client, "bob", "secret1")
        assert client.get("/auth/me", headers=bearer(tokens["refreshToken"])).status_code == 401

    def test_deleted_user(self, client, make_user, db):
        user = make_user(name="bob")
        tokens = login_tokens(client, "bob", "secret1")
        db.delete(user)
        db.commit()
        resp = client.get("/auth/me", headers=bearer(tokens["accessToken"]))
        assert resp.status_code == 401
        assert resp.json()["message"] == "User no longer exists"

    def test_disabled_user(self, client, make_user, db):
        user = make_user(name="bob")
        tokens = login_tokens(client, "bob", "secret1")
        user.is_active = False
        db.commit()
        assert client.get("/auth/me", headers=bearer(tokens["accessToken"])).status_code == 401

    def test_locked_user(self, client, make_user, db):
        user = make_user(name="bob")
        tokens = login_tokens(client, "bob", "secret1")
        user.lock_until = utcnow() + timedelta(minutes=5)
        db.commit()
        assert client.get("/auth/me", headers=bearer(tokens["accessToken"])).status_code == 423

    def test_validate_token(self, client, make_user):
        make_user(name="bob")
        tokens = login_tokens(client, "bob", "secret1")
        resp = client.get("/auth/validate-token", headers=bearer(tokens["accessToken"]))
        assert resp.status_code == 200
        assert resp.json()["data"]["valid"] is True


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


class TestProfile:
    def test_get_profile(self, client, make_user):
        make_user(name="bob")
        tokens = login_tokens(client, "bob", "secret1")
        resp = client.get("/auth/profile", headers=bearer(tokens["accessToken"]))
        assert resp.status_code == 200
        assert resp.json()["data"]["user"]["preferences"]["language"] == "vi"

    def test_update_profile(self, client, make_user):
        make_user(name="bob")
        tokens = login_tokens(client, "bob", "secret1")
        resp = client.put(
            "/auth/profile",
            json={
                "name": "  bobby ",
                "phone": "0900000000",
                "address": {"street": "1 Main St", "city": "Hanoi", "zipCode": "100000"},
            },
            headers=bearer(tokens["accessToken"]),
        )
        assert resp.status_code == 200
        user = resp.json()["data"]["user"]
        assert user["name"] == "bobby"
        assert user["phone"] == "0900000000"
        assert user["address"]["zipCode"] == "100000"
        assert login(client, "bobby", "secret1").status_code == 200

    def test_password_is_ignored(self, client, make_user):
        make_user(name="bob")
        tokens = login_tokens(client, "bob", "secret1")
        client.put("/auth/profile", json={"password": "hacked1"}, headers=bearer(tokens["accessToken"]))
        assert login(client, "bob", "secret1").status_code == 200

    def test_taken_email_is_rejected(self, client, make_user):
        make_user(name="bob")
        make_user(name="carol", email="carol@example.com")
        tokens = login_tokens(client, "bob", "secret1")
        resp = client.put(
            "/auth/profile", json={"email": "Carol@Example.com"}, headers=bearer(tokens["accessToken"])
        )
        assert resp.status_code == 400
        assert resp.json()["message"] == "Email already in use by another account"

    def test_taken_name_is_rejected(self, client, make_user):
        make_user(name="bob")
        make_user(name="carol")
        tokens = login_tokens(client, "bob", "secret1")
        resp = client.put("/auth/profile", json={"name": "carol"}, headers=bearer(tokens["accessToken"]))
        assert resp.status_code == 400

    @pytest.mark.parametrize("phone", ["not-a-phone", "0900abc", "1" * 40])
    def test_invalid_phone_is_rejected(self, client, make_user, phone):
        make_user(name="bob")
        tokens = login_tokens(client, "bob", "secret1")
        resp = client.put("/auth/profile", json={"phone": phone}, headers=bearer(tokens["accessToken"]))
        assert resp.status_code == 400
        assert resp.json()["errors"] == ["phone: invalid phone number"]

    def test_formatted_phone_is_accepted(self, client, make_user):
        make_user(name="bob")
        tokens = login_tokens(client, "bob", "secret1")
        resp = client.put(
            "/auth/profile", json={"phone": "+84 (90) 000-0000"}, headers=bearer(tokens["accessToken"])
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["user"]["phone"] == "+84 (90) 000-0000"

    def test_preferences_language(self, client, make_user):
        make_user(name="bob")
        headers = bearer(login_tokens(client, "bob", "secret1")["accessToken"])
        resp = client.put("/auth/profile", json={"preferences": {"language": "fr"}}, headers=headers)
        assert resp.status_code == 400
        assert resp.json()["errors"] == ["preferences.language: must be one of vi, en"]

        resp = client.put("/auth/profile", json={"preferences": {"language": "en"}}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["data"]["user"]["preferences"]["language"] == "en"


# ---------------------------------------------------------------------------
# Change password
# ---------------------------------------------------------------------------


class TestChangePassword:
    def test_change_password_revokes_everything(self, client, make_user, db):
        user = make_user(name="bob")
        tokens = login_tokens(client, "bob", "secret1")
        time.sleep(0.01)

        resp = client.put(
            "/auth/change-password",
            json={"currentPassword": "secret1", "newPassword": "secret2"},
            headers=bearer(tokens["accessToken"]),
        )
        assert resp.status_code == 200

        assert client.get("/auth/me", headers=bearer(tokens["accessToken"])).status_code == 401
        assert client.post("/auth/refresh-token", json={"refreshToken": tokens["refreshToken"]}).status_code == 401
        assert db.query(RefreshSession).filter_by(user_id=user.id).count() == 0
        assert login(client, "bob", "secret1").status_code == 401
        fresh = login_tokens(client, "bob", "secret2")
        assert client.get("/auth/me", headers=bearer(fresh["accessToken"])).status_code == 200

    def test_requires_verified_email(self, client, make_user):
        make_user(name="bob", verified=False)
        tokens = login_tokens(client, "bob", "secret1")
        resp = client.put(
            "/auth/change-password",
            json={"currentPassword": "secret1", "newPassword": "secret2"},
            headers=bearer(tokens["accessToken"]),
        )
        assert resp.status_code == 403

    def test_wrong_current_password(self, client, make_user):
        make_user(name="bob")
        tokens = login_tokens(client, "bob", "secret1")
        resp = client.put(
            "/auth/change-password",
            json={"currentPassword": "nope", "newPassword": "secret2"},
            headers=bearer(tokens["accessToken"]),
        )
        assert resp.status_code == 400

    def test_short_new_password(self, client, make_user):
        make_user(name="bob")
        tokens = login_tokens(client, "bob", "secret1")
        resp = client.put(
            "/auth/change-password",
            json={"currentPassword": "secret1", "newPassword": "123"},
            headers=bearer(tokens["accessToken"]),
        )
        assert resp.status_code == 400
        assert resp.json()["errors"] == ["newPassword: must be at least 6 characters"]

    def test_overlong_new_password(self, client, make_user):
        make_user(name="bob")
        tokens = login_tokens(client, "bob", "secret1")
        resp = client.put(
            "/auth/change-password",
            json={"currentPassword": "secret1", "newPassword": "p" * 5000},
            headers=bearer(tokens["accessToken"]),
        )
        assert resp.status_code == 400
        assert resp.json()["errors"] == ["newPassword: must be at most 128 characters"]
        assert login(client, "bob", "secret1").status_code == 200


# ---------------------------------------------------------------------------
# Email verification
# ---------------------------------------------------------------------------


class TestVerifyEmail:
    def test_verify_then_welcome(self, client, mailer, db):
        _register(client)
        resp = _verify(client, mailer)
        assert resp.json()["data"]["user"]["isEmailVerified"] is True
        assert mailer.outbox[-1]["subject"].startswith("Welcome")

        user = db.query(User).filter_by(name="alice").one()
        assert user.email_verification_token_hash is None

    def test_second_verification_is_rejected(self, client, mailer, db):
        """Scenario D."""
        _register(client)
        token = mailer.last_token("a@x.com")
        assert client.post("/auth/verify-email", json={"token": token}).status_code == 200
        before = db.query(User).filter_by(name="alice").one().updated_at

        resp = client.post("/auth/verify-email", json={"token": token})
        assert resp.status_code == 400
        assert resp.json()["message"] == "Email has already been verified"
        db.expire_all()
        user = db.query(User).filter_by(name="alice").one()
        assert user.is_email_verified is True
        assert user.updated_at == before

    def test_wrong_kind_of_token(self, client, make_user):
        user = make_user(name="bob", verified=False)
        token = issue_token(TokenKind.PASSWORD_RESET, {"id": user.id, "email": user.email})
        assert client.post("/auth/verify-email", json={"token": token}).status_code == 400

    def test_expired_token(self, client, make_user):
        user = make_user(name="bob", verified=False)
        token = issue_token(
            TokenKind.EMAIL_VERIFICATION, {"id": user.id, "email": user.email}, ttl=timedelta(seconds=-1)
        )
        assert client.post("/auth/verify-email", json={"token": token}).status_code == 400

    def test_missing_token(self, client):
        assert client.post("/auth/verify-email", json={}).status_code == 400

    def test_welcome_mail_failure_is_ignored(self, client, mailer):
        _register(client)
        token = mailer.last_token("a@x.com")
        mailer.fail = True
        assert client.post("/auth/verify-email", json={"token": token}).status_code == 200

    def test_resend_verification(self, client, mailer):
        tokens = _register(client).json()["data"]["tokens"]
        resp = client.post("/auth/resend-verification", headers=bearer(tokens["accessToken"]))
        assert resp.status_code == 200
        assert len(mailer.outbox) == 2
        _verify(client, mailer)

        again = client.post("/auth/resend-verification", headers=bearer(tokens["accessToken"]))
        assert again.status_code == 400

    def test_resend_mail_failure_is_500(self, client, mailer):
        tokens = _register(client).json()["data"]["tokens"]
        mailer.fail = True
        resp = client.post("/auth/resend-verification", headers=bearer(tokens["accessToken"]))
        assert resp.status_code == 500


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


class TestPasswordReset:
    def test_reset_flow(self, client, make_user, mailer, db):
        """Scenario E."""
        make_user(name="bob", email="bob@example.com")
        old = login_tokens(client, "bob", "secret1")
        time.sleep(0.01)

        assert client.post("/auth/forgot-password", json={"email": "bob@example.com"}).status_code == 200
        token = mailer.last_token("bob@example.com")

        resp = client.post("/auth/reset-password", json={"token": token, "newPassword": "newsecret"})
        assert resp.status_code == 200

        assert login(client, "bob", "secret1").status_code == 401
        assert login(client, "bob", "newsecret").status_code == 200
        assert client.get("/auth/me", headers=bearer(old["accessToken"])).status_code == 401
        assert client.post("/auth/refresh-token", json={"refreshToken": old["refreshToken"]}).status_code == 401

        db.expire_all()
        user = db.query(User).filter_by(name="bob").one()
        assert user.password_reset_token_hash is None
        assert user.password_reset_expires is None

    def test_overlong_new_password(self, client, make_user, mailer):
        make_user(name="bob", email="bob@example.com")
        client.post("/auth/forgot-password", json={"email": "bob@example.com"})
        token = mailer.last_token("bob@example.com")
        resp = client.post("/auth/reset-password", json={"token": token, "newPassword": "p" * 5000})
        assert resp.status_code == 400
        assert login(client, "bob", "secret1").status_code == 200

    def test_reset_token_is_single_use(self, client, make_user, mailer):
        make_user(name="bob", email="bob@example.com")
        client.post("/auth/forgot-password", json={"email": "bob@example.com"})
        token = mailer.last_token("bob@example.com")

        assert client.post("/auth/reset-password", json={"token": token, "newPassword": "newsecret"}).status_code == 200
        replay = client.post("/auth/reset-password", json={"token": token, "newPassword": "another1"})
        assert replay.status_code == 400
        assert login(client, "bob", "newsecret").status_code == 200

    def test_only_latest_reset_token_works(self, client, make_user, mailer):
        make_user(name="bob", email="bob@example.com")
        client.post("/auth/forgot-password", json={"email": "bob@example.com"})
        first = mailer.last_token("bob@example.com")
        client.post("/auth/forgot-password", json={"email": "bob@example.com"})
        second = mailer.last_token("bob@example.com")
        assert first != second

        assert client.post("/auth/reset-password", json={"token": first, "newPassword": "newsecret"}).status_code == 400
        assert client.post("/auth/reset-password", json={"token": second, "newPassword": "newsecret"}).status_code == 200

    def test_stored_expiry_is_enforced(self, client, make_user, mailer, db):
        user = make_user(name="bob", email="bob@example.com")
        client.post("/auth/forgot-password", json={"email": "bob@example.com"})
        token = mailer.last_token("bob@example.com")

        db.expire_all()
        user.password_reset_expires = utcnow() - timedelta(seconds=1)
        db.commit()
        assert client.post("/auth/reset-password", json={"token": token, "newPassword": "newsecret"}).status_code == 400

    def test_unknown_email_is_disclosed(self, client):
        resp = client.post("/auth/forgot-password", json={"email": "ghost@example.com"})
        assert resp.status_code == 400
        assert resp.json()["message"] == "Email not found"

    def test_unverified_email(self, client, make_user, mailer):
        make_user(name="bob", email="bob@example.com", verified=False)
        resp = client.post("/auth/forgot-password", json={"email": "bob@example.com"})
        assert resp.status_code == 403
        assert mailer.outbox == []

    def test_mail_failure_rolls_back(self, client, make_user, mailer, db):
        user = make_user(name="bob", email="bob@example.com")
        mailer.fail = True
        resp = client.post("/auth/forgot-password", json={"email": "bob@example.com"})
        assert resp.status_code == 500

        db.expire_all()
        assert user.password_reset_token_hash is None
        assert user.password_reset_expires is None

    def test_bad_token(self, client):
        resp = client.post("/auth/reset-password", json={"token": "garbage", "newPassword": "newsecret"})
        assert resp.status_code == 400

    def test_missing_fields(self, client):
        assert client.post("/auth/reset-password", json={"token": "x"}).status_code == 400


# ---------------------------------------------------------------------------
# Delete account
# ---------------------------------------------------------------------------


class TestDeleteAccount:
    def _delete(self, client, token, **body):
        return client.request("DELETE", "/auth/delete-account", json=body, headers=bearer(token))

    def test_delete_account(self, client, make_user, db):
        make_user(name="bob")
        tokens = login_tokens(client, "bob", "secret1")
        resp = self._delete(client, tokens["accessToken"], password="secret1", confirmDelete="DELETE_MY_ACCOUNT")
        assert resp.status_code == 200
        assert db.query(User).filter_by(name="bob").first() is None
        assert db.query(RefreshSession).count() == 0
        assert client.get("/auth/me", headers=bearer(tokens["accessToken"])).status_code == 401

    def test_confirmation_phrase_required(self, client, make_user):
        make_user(name="bob")
        tokens = login_tokens(client, "bob", "secret1")
        resp = self._delete(client, tokens["accessToken"], password="secret1", confirmDelete="yes")
        assert resp.status_code == 400

    def test_password_required_and_checked(self, client, make_user):
        make_user(name="bob")
        tokens = login_tokens(client, "bob", "secret1")
        missing = self._delete(client, tokens["accessToken"], confirmDelete="DELETE_MY_ACCOUNT")
        wrong = self._delete(client, tokens["accessToken"], password="nope", confirmDelete="DELETE_MY_ACCOUNT")
        assert missing.status_code == wrong.status_code == 400

    def test_admin_cannot_self_delete(self, client, make_user):
        make_user(name="root", role=Role.ADMIN)
        tokens = login_tokens(client, "root", "secret1")
        resp = self._delete(client, tokens["accessToken"], password="secret1", confirmDelete="DELETE_MY_ACCOUNT")
        assert resp.status_code == 403


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}

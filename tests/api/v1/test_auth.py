"""
Tests for authentication API endpoints.

These tests cover the /api/v1/auth endpoints including:
- Registration and login
- Token refresh (rotation and reuse)
- Logout and logout from all devices
- Current account info, roles and profile update
"""

from datetime import timedelta

import pytest
from httpx import AsyncClient

from app.config import Settings
from app.core.security import TokenIssuer
from app.models.account import Accounts
from app.services.credential_store import CredentialStore


@pytest.mark.api
class TestRegister:
    """Tests for POST /api/v1/auth/register endpoint."""

    async def test_register_success(self, auth_flow, issuer: TokenIssuer, store: CredentialStore):
        response = await auth_flow.register("New.Shopper@example.com", name="Shopper")

        assert response.status_code == 201
        data = response.json()
        assert data["token_type"] == "bearer"
        assert data["expires_in"] == 15 * 60
        assert data["user"]["email"] == "new.shopper@example.com"
        assert data["user"]["name"] == "Shopper"
        assert data["user"]["roles"] == ["customer"]
        assert "password_hash" not in data["user"]
        assert "refresh_token" not in data

        # Refresh token only travels in the HTTPOnly cookie
        refresh_token = response.cookies["refresh_token"]
        assert "httponly" in response.headers["set-cookie"].lower()
        account_id = issuer.verify(data["access_token"], "access").subject
        assert account_id == data["user"]["id"]
        assert await store.has_fingerprint(account_id, issuer.fingerprint(refresh_token))

    async def test_register_duplicate_email(self, auth_flow, customer: Accounts):
        response = await auth_flow.register("Customer@Example.com")

        assert response.status_code == 409
        assert response.json()["code"] == "conflict"

    async def test_register_short_password(self, auth_flow):
        response = await auth_flow.register("short@example.com", password="12345")

        assert response.status_code == 400
        assert response.json()["code"] == "bad_request"

    async def test_register_invalid_email(self, auth_flow):
        response = await auth_flow.register("not-an-email")

        assert response.status_code == 400


@pytest.mark.api
class TestLogin:
    """Tests for POST /api/v1/auth/login endpoint."""

    async def test_login_success(
        self, auth_flow, customer: Accounts, issuer: TokenIssuer, store: CredentialStore
    ):
        response = await auth_flow.login(customer.email)

        assert response.status_code == 200
        data = response.json()
        claims = issuer.verify(data["access_token"], "access")
        assert claims.subject == customer.id
        assert claims.roles == ("customer",)

        refresh_token = response.cookies["refresh_token"]
        assert await store.has_fingerprint(customer.id, issuer.fingerprint(refresh_token))

    async def test_login_email_is_case_insensitive(self, auth_flow, customer: Accounts):
        response = await auth_flow.login("CUSTOMER@example.com")

        assert response.status_code == 200

    async def test_login_wrong_password(self, auth_flow, customer: Accounts):
        response = await auth_flow.login(customer.email, password="wrong-password")

        assert response.status_code == 401
        assert response.json() == {
            "detail": "Incorrect email or password",
            "code": "unauthorized",
        }
        assert "refresh_token" not in response.cookies

    async def test_login_unknown_email(self, auth_flow):
        response = await auth_flow.login("nobody@example.com")

        assert response.status_code == 401
        assert response.json()["detail"] == "Incorrect email or password"

    async def test_login_without_csrf_token(self, client: AsyncClient, customer: Accounts):
        response = await client.post(
            "/api/v1/auth/login",
            json={"email": customer.email, "password": "secret1"},
        )

        assert response.status_code == 403
        assert response.json()["code"] == "invalid_csrf_token"


@pytest.mark.api
class TestRefresh:
    """Tests for POST /api/v1/auth/token endpoint."""

    async def test_refresh_rotates_cookie(self, auth_flow, customer: Accounts, issuer: TokenIssuer):
        login = await auth_flow.login(customer.email)
        old_refresh = login.cookies["refresh_token"]

        response = await auth_flow.send("POST", "/auth/token")

        assert response.status_code == 200
        new_refresh = response.cookies["refresh_token"]
        assert new_refresh != old_refresh
        assert issuer.verify(response.json()["access_token"], "access").subject == customer.id

    async def test_refresh_without_cookie(self, auth_flow):
        response = await auth_flow.send("POST", "/auth/token")

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid refresh token"

    async def test_refresh_with_garbage_cookie(self, auth_flow):
        response = await auth_flow.refresh_with("garbage")

        assert response.status_code == 401

    async def test_refresh_with_expired_cookie(
        self, auth_flow, customer: Accounts, store: CredentialStore, settings: Settings
    ):
        stale_issuer = TokenIssuer(
            access_secret=settings.SECRET_KEY,
            refresh_secret=settings.REFRESH_SECRET_KEY,
            refresh_ttl=timedelta(seconds=-5),
        )
        expired = stale_issuer.issue_refresh_token(customer.id)
        await store.add_fingerprint(customer.id, stale_issuer.fingerprint(expired))

        response = await auth_flow.refresh_with(expired)

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid refresh token"

    async def test_refresh_reuse_rejected(self, auth_flow, customer: Accounts):
        login = await auth_flow.login(customer.email)
        old_refresh = login.cookies["refresh_token"]

        first = await auth_flow.refresh_with(old_refresh)
        second = await auth_flow.refresh_with(old_refresh)

        assert first.status_code == 200
        assert second.status_code == 401

    async def test_refresh_picks_up_new_roles(
        self, auth_flow, customer: Accounts, store: CredentialStore, issuer: TokenIssuer
    ):
        login = await auth_flow.login(customer.email)
        await store.update_roles(customer, ["customer", "admin"])

        response = await auth_flow.refresh_with(login.cookies["refresh_token"])

        claims = issuer.verify(response.json()["access_token"], "access")
        assert claims.roles == ("customer", "admin")


@pytest.mark.api
class TestLogout:
    """Tests for POST /api/v1/auth/logout and /logout-all endpoints."""

    async def test_logout_clears_cookie_and_revokes(self, auth_flow, customer: Accounts):
        login = await auth_flow.login(customer.email)
        refresh_token = login.cookies["refresh_token"]

        response = await auth_flow.logout_with(refresh_token)

        assert response.status_code == 200
        assert response.json() == {"message": "Successfully logged out"}
        assert 'refresh_token=""' in response.headers["set-cookie"]

        assert (await auth_flow.refresh_with(refresh_token)).status_code == 401

    async def test_second_logout_rejected(self, auth_flow, customer: Accounts):
        login = await auth_flow.login(customer.email)
        refresh_token = login.cookies["refresh_token"]
        await auth_flow.logout_with(refresh_token)

        response = await auth_flow.logout_with(refresh_token)

        assert response.status_code == 401

    async def test_logout_all_revokes_every_device(self, auth_flow, customer: Accounts):
        laptop = await auth_flow.login(customer.email)
        phone = await auth_flow.login(customer.email)

        response = await auth_flow.send(
            "POST", "/auth/logout-all", access_token=phone.json()["access_token"]
        )

        assert response.status_code == 200
        for device in (laptop, phone):
            refreshed = await auth_flow.refresh_with(device.cookies["refresh_token"])
            assert refreshed.status_code == 401

    async def test_logout_all_requires_access_token(self, auth_flow, customer: Accounts):
        await auth_flow.login(customer.email)

        response = await auth_flow.send("POST", "/auth/logout-all")

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"


@pytest.mark.api
class TestCurrentAccount:
    """Tests for GET /auth/user, GET /auth/user/roles and PATCH /auth/me."""

    async def test_get_user(self, client: AsyncClient, customer: Accounts, customer_token: str):
        response = await client.get(
            "/api/v1/auth/user", headers={"Authorization": f"Bearer {customer_token}"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == customer.id
        assert data["email"] == customer.email
        assert "password_hash" not in data

    async def test_get_user_requires_bearer(self, client: AsyncClient):
        response = await client.get("/api/v1/auth/user")

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    async def test_get_user_with_expired_token(
        self, client: AsyncClient, customer: Accounts, settings: Settings
    ):
        stale_issuer = TokenIssuer(
            access_secret=settings.SECRET_KEY,
            refresh_secret=settings.REFRESH_SECRET_KEY,
            access_ttl=timedelta(seconds=-5),
        )
        token = stale_issuer.issue_access_token(customer.id, customer.roles)

        response = await client.get(
            "/api/v1/auth/user", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 401
        assert response.json()["detail"] == "Token expired"
        assert response.headers["www-authenticate"] == "Bearer"

    async def test_get_user_with_token_signed_by_another_key(
        self, client: AsyncClient, customer: Accounts, settings: Settings
    ):
        forged_issuer = TokenIssuer(
            access_secret="some-other-secret",
            refresh_secret=settings.REFRESH_SECRET_KEY,
        )
        token = forged_issuer.issue_access_token(customer.id, ["customer", "admin"])

        response = await client.get(
            "/api/v1/auth/user", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 401
        assert response.json()["detail"] == "Could not validate credentials"
        assert response.headers["www-authenticate"] == "Bearer"

    async def test_get_user_with_malformed_token(self, client: AsyncClient):
        response = await client.get(
            "/api/v1/auth/user", headers={"Authorization": "Bearer not-a-jwt"}
        )

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    async def test_refresh_cookie_is_not_an_access_credential(self, auth_flow, customer: Accounts):
        login = await auth_flow.login(customer.email)

        response = await auth_flow.client.get(
            "/api/v1/auth/user",
            headers={"Authorization": f"Bearer {login.cookies['refresh_token']}"},
        )

        assert response.status_code == 401

    async def test_get_user_for_deleted_account(
        self, client: AsyncClient, issuer: TokenIssuer
    ):
        token = issuer.issue_access_token("0" * 32, ["customer"])

        response = await client.get(
            "/api/v1/auth/user", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 401

    async def test_get_roles(self, client: AsyncClient, admin_token: str):
        response = await client.get(
            "/api/v1/auth/user/roles", headers={"Authorization": f"Bearer {admin_token}"}
        )

        assert response.status_code == 200
        assert response.json() == {"roles": ["customer", "admin"]}

    async def test_update_profile_name(self, auth_flow, customer: Accounts, customer_token: str):
        response = await auth_flow.send(
            "PATCH", "/auth/me", access_token=customer_token, json={"name": "Renamed"}
        )

        assert response.status_code == 200
        assert response.json()["name"] == "Renamed"
        assert response.json()["roles"] == ["customer"]

    async def test_update_profile_ignores_roles(
        self, auth_flow, customer: Accounts, customer_token: str
    ):
        response = await auth_flow.send(
            "PATCH",
            "/auth/me",
            access_token=customer_token,
            json={"name": "Sneaky", "roles": ["admin"]},
        )

        assert response.status_code == 200
        assert response.json()["roles"] == ["customer"]

    async def test_update_profile_requires_csrf(
        self, client: AsyncClient, customer: Accounts, customer_token: str
    ):
        response = await client.patch(
            "/api/v1/auth/me",
            headers={"Authorization": f"Bearer {customer_token}"},
            json={"name": "Renamed"},
        )

        assert response.status_code == 403
        assert response.json()["code"] == "invalid_csrf_token"

"""Tests for Google and Facebook sign-in and account linking."""

import asyncio

import httpx
import pytest
from google.oauth2 import id_token

from auth import verify_password
from errors import (
    InvalidCredentialsError,
    SocialAccountLinkedError,
    SocialAuthError,
    SocialLoginNotConfiguredError,
)
from models import User
from services.social_auth_service import FacebookVerifier, GoogleVerifier, SocialIdentity


def google_identity(**overrides):
    values = {
        "provider": "google",
        "subject": "google-123",
        "email": "pat@example.com",
        "name": "Pat Example",
        "picture": "https://example.com/pat.png",
    }
    values.update(overrides)
    return SocialIdentity(**values)


class StubSocialAuth:
    """Accepts only the tokens it was given."""

    def __init__(self, identities):
        self.identities = identities

    async def verify(self, provider, token):
        identity = self.identities.get((provider, token))
        if identity is None:
            raise SocialAuthError(provider)
        return identity


class TestSocialLogin:
    def test_first_login_creates_verified_account(self, db, user_service):
        user = user_service.social_login(db, google_identity(email="Pat@Example.com"))

        assert user.id is not None
        assert user.email == "pat@example.com"
        assert user.google_id == "google-123"
        assert user.email_verified is True
        assert user.avatar == "https://example.com/pat.png"
        assert user.last_login is not None
        assert db.query(User).count() == 1

    def test_existing_email_account_is_linked(self, db, user_service, customer):
        user = user_service.social_login(db, google_identity(email=customer.email))

        assert user.id == customer.id
        assert user.google_id == "google-123"
        assert verify_password("secret123", user.password_hash)
        assert db.query(User).count() == 1

    def test_returning_user_found_by_provider_id(self, db, user_service):
        first = user_service.social_login(db, google_identity())
        again = user_service.social_login(db, google_identity(email="pat.new@example.com"))
        assert again.id == first.id
        assert again.email == "pat@example.com"

    def test_existing_link_is_kept(self, db, user_service, make_user):
        user = make_user(email="pat@example.com", google_id="google-original")
        signed_in = user_service.social_login(db, google_identity(subject="google-other"))
        assert signed_in.id == user.id
        assert signed_in.google_id == "google-original"

    def test_missing_email_is_rejected(self, db, user_service):
        with pytest.raises(SocialAuthError, match="no verified email"):
            user_service.social_login(db, google_identity(email=None))
        assert db.query(User).count() == 0

    def test_deactivated_account(self, db, user_service, make_user):
        make_user(email="pat@example.com", is_active=False)
        with pytest.raises(InvalidCredentialsError):
            user_service.social_login(db, google_identity())


class TestLinkAccount:
    def test_link_sets_provider_id(self, db, user_service, customer):
        identity = SocialIdentity(provider="facebook", subject="fb-42")
        user = user_service.link_social_account(db, customer, identity)
        assert user.facebook_id == "fb-42"

    def test_relinking_own_account_is_allowed(self, db, user_service, make_user):
        user = make_user(facebook_id="fb-42")
        identity = SocialIdentity(provider="facebook", subject="fb-42")
        assert user_service.link_social_account(db, user, identity).facebook_id == "fb-42"

    def test_account_owned_by_someone_else(self, db, user_service, customer, make_user):
        make_user(email="owner@example.com", facebook_id="fb-42")
        identity = SocialIdentity(provider="facebook", subject="fb-42")

        with pytest.raises(SocialAccountLinkedError, match="Facebook account is already linked"):
            user_service.link_social_account(db, customer, identity)
        db.refresh(customer)
        assert customer.facebook_id is None


def facebook_with(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return FacebookVerifier(client, "https://graph.test/me")


class TestFacebookVerifier:
    def test_reads_profile(self):
        def handler(request):
            assert request.url.params["access_token"] == "fb-token"
            assert request.url.params["fields"] == "id,name,email,picture"
            return httpx.Response(200, json={
                "id": "10001",
                "name": "Sam Example",
                "email": "sam@example.com",
                "picture": {"data": {"url": "https://example.com/sam.jpg"}},
            })

        identity = asyncio.run(facebook_with(handler).verify("fb-token"))
        assert identity == SocialIdentity(
            provider="facebook",
            subject="10001",
            email="sam@example.com",
            name="Sam Example",
            picture="https://example.com/sam.jpg",
        )

    def test_rejected_token(self):
        verifier = facebook_with(lambda request: httpx.Response(400, json={"error": {"message": "bad"}}))
        with pytest.raises(SocialAuthError, match="Invalid Facebook token"):
            asyncio.run(verifier.verify("expired"))

    def test_graph_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("boom", request=request)

        with pytest.raises(SocialAuthError):
            asyncio.run(facebook_with(handler).verify("fb-token"))


class TestGoogleVerifier:
    def test_not_configured(self):
        with pytest.raises(SocialLoginNotConfiguredError):
            asyncio.run(GoogleVerifier(None).verify("id-token"))

    def test_checks_audience(self, monkeypatch):
        seen = {}

        def verify(token, request, audience):
            seen.update(token=token, audience=audience)
            return {"sub": "g-1", "email": "pat@example.com", "email_verified": True, "name": "Pat"}

        monkeypatch.setattr(id_token, "verify_oauth2_token", verify)
        identity = asyncio.run(GoogleVerifier("client-id.apps").verify("id-token"))

        assert seen == {"token": "id-token", "audience": "client-id.apps"}
        assert identity.subject == "g-1"
        assert identity.email == "pat@example.com"

    def test_unverified_email_is_dropped(self, monkeypatch):
        monkeypatch.setattr(id_token, "verify_oauth2_token", lambda token, request, audience: {
            "sub": "g-1", "email": "pat@example.com", "email_verified": False,
        })
        identity = asyncio.run(GoogleVerifier("client-id.apps").verify("id-token"))
        assert identity.email is None

    def test_invalid_token(self, monkeypatch):
        def verify(token, request, audience):
            raise ValueError("Token expired")

        monkeypatch.setattr(id_token, "verify_oauth2_token", verify)
        with pytest.raises(SocialAuthError, match="Invalid Google token"):
            asyncio.run(GoogleVerifier("client-id.apps").verify("id-token"))


class TestSocialAuthApi:
    @pytest.fixture
    def social_client(self, client):
        client.app.state.social_auth_service = StubSocialAuth({
            ("google", "good-google"): google_identity(),
            ("facebook", "good-facebook"): SocialIdentity(
                provider="facebook", subject="fb-42", email="sam@example.com", name="Sam Example"
            ),
        })
        return client

    def test_google_login(self, social_client):
        response = social_client.post("/api/auth/google", json={"token": "good-google"})
        assert response.status_code == 200
        data = response.json()
        assert data["user"]["email"] == "pat@example.com"
        assert data["user"]["email_verified"] is True

        me = social_client.get("/api/auth/me", headers={"Authorization": f"Bearer {data['token']}"})
        assert me.json()["id"] == data["user"]["id"]

    def test_facebook_login(self, social_client):
        response = social_client.post("/api/auth/facebook", json={"access_token": "good-facebook"})
        assert response.status_code == 200
        assert response.json()["user"]["full_name"] == "Sam Example"

    def test_bad_token(self, social_client):
        response = social_client.post("/api/auth/google", json={"token": "forged"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid Google token"

    def test_token_is_required(self, social_client):
        assert social_client.post("/api/auth/google", json={}).status_code == 422

    def test_link_requires_login(self, social_client):
        assert social_client.post("/api/auth/link/google", json={"token": "good-google"}).status_code == 401

    def test_link_and_conflict(self, social_client, customer, make_user, auth_headers):
        response = social_client.post("/api/auth/link/facebook", headers=auth_headers(customer),
                                      json={"access_token": "good-facebook"})
        assert response.status_code == 200
        assert response.json()["message"] == "Facebook account linked successfully"

        other = make_user(email="other@example.com")
        response = social_client.post("/api/auth/link/facebook", headers=auth_headers(other),
                                      json={"access_token": "good-facebook"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Facebook account is already linked to another user"

    def test_google_unavailable_without_client_id(self, client):
        response = client.post("/api/auth/google", json={"token": "anything"})
        assert response.status_code == 503

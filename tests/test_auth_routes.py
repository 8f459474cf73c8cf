"""
tests/test_auth_routes.py -- Integration tests for the /api/v1/auth routes.

These tests exercise the full stack: FastAPI routing -> dependency injection
-> AuthService -> SQLite stores -> response model serialization -> exception
handlers. The only test doubles are the mailer (so the OTP can be read back)
and the clock (so expiry can be forced).

Coverage:
  - signup: 200 message, 400 on missing fields / malformed body / a password
    over 72 UTF-8 bytes, 400 on duplicate account, 500 with no orphaned
    pending row on mail failure; multi-byte passwords sign up and sign in
  - verify-otp: 201 with userId, 400 invalid_otp / otp_expired / otp_not_found
  - signin: 200 + session cookie attributes, identical 401 for bad password
    and unknown email
  - me: 200 with cookie or Bearer token, 401 without
  - logout: clears the cookie with the same attributes; me is 401 afterwards
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from tests.conftest import ApiHarness, make_app

SIGNUP = "/api/v1/auth/signup"
VERIFY = "/api/v1/auth/verify-otp"
SIGNIN = "/api/v1/auth/signin"
LOGOUT = "/api/v1/auth/logout"
ME = "/api/v1/auth/me"


def _set_cookie_headers(resp) -> list[str]:
    return [v.lower() for k, v in resp.headers.multi_items() if k.lower() == "set-cookie"]


def _cookie_attrs(header: str) -> list[str]:
    """Attributes after the name=value pair, so the token itself is never matched."""
    return [part.strip() for part in header.split(";")[1:]]


def _register(api: ApiHarness, email: str = "a@x.com", password: str = "p") -> int:
    resp = api.client.post(SIGNUP, json={"name": "A", "email": email, "password": password})
    assert resp.status_code == 200, resp.text
    resp = api.client.post(VERIFY, json={"email": email, "otp": api.mailer.last_otp()})
    assert resp.status_code == 201, resp.text
    return resp.json()["userId"]


class TestSignupRoute:
    def test_signup_returns_message(self, api_client: ApiHarness) -> None:
        resp = api_client.client.post(SIGNUP, json={"name": "A", "email": "a@x.com", "password": "p"})
        assert resp.status_code == 200
        assert resp.json() == {"message": "OTP sent to your email. Please verify to complete registration."}
        assert api_client.service.pending.find_by_email("a@x.com") is not None
        assert api_client.service.accounts.find_by_email("a@x.com") is None

    @pytest.mark.parametrize(
        "body",
        [{}, {"name": "A", "email": "a@x.com"}, {"name": "", "email": "a@x.com", "password": "p"}],
    )
    def test_missing_fields_400(self, api_client: ApiHarness, body: dict) -> None:
        resp = api_client.client.post(SIGNUP, json=body)
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "bad_request"

    def test_malformed_body_400(self, api_client: ApiHarness) -> None:
        resp = api_client.client.post(SIGNUP, content=b"not json", headers={"Content-Type": "application/json"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "bad_request"

    def test_overlong_password_400_without_echo(self, api_client: ApiHarness) -> None:
        secret = "x" * 100
        resp = api_client.client.post(SIGNUP, json={"name": "A", "email": "a@x.com", "password": secret})
        assert resp.status_code == 400
        assert secret not in resp.text

    def test_multibyte_password_signup_and_signin(self, api_client: ApiHarness) -> None:
        password = "p\u00e4ssw\u00f6rd-\u00e9" * 4
        uid = _register(api_client, password=password)
        resp = api_client.client.post(SIGNIN, json={"email": "a@x.com", "password": password})
        assert resp.status_code == 200
        assert resp.json()["user"]["id"] == uid

    def test_password_over_72_bytes_400(self, api_client: ApiHarness) -> None:
        secret = "\u00e9" * 40
        resp = api_client.client.post(SIGNUP, json={"name": "A", "email": "a@x.com", "password": secret})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "bad_request"
        assert "72 bytes" in resp.json()["error"]["detail"]
        assert secret not in resp.text
        assert api_client.service.pending.find_by_email("a@x.com") is None

    def test_existing_account_400_conflict(self, api_client: ApiHarness) -> None:
        _register(api_client)
        resp = api_client.client.post(SIGNUP, json={"name": "A", "email": "a@x.com", "password": "p"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "conflict"

    def test_mail_failure_500_no_orphan(self, api_client: ApiHarness) -> None:
        api_client.mailer.fail = True
        resp = api_client.client.post(SIGNUP, json={"name": "A", "email": "a@x.com", "password": "p"})
        assert resp.status_code == 500
        assert resp.json()["error"]["code"] == "server_error"
        assert "relay unavailable" not in resp.text
        assert api_client.service.pending.find_by_email("a@x.com") is None


class TestVerifyOtpRoute:
    def test_example_flow(self, api_client: ApiHarness) -> None:
        """signup 200 -> wrong code 400 invalid_otp -> mailed code 201 with userId."""
        client = api_client.client
        assert client.post(SIGNUP, json={"name": "A", "email": "a@x.com", "password": "p"}).status_code == 200

        wrong = "000000" if api_client.mailer.last_otp() != "000000" else "111111"
        resp = client.post(VERIFY, json={"email": "a@x.com", "otp": wrong})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_otp"

        resp = client.post(VERIFY, json={"email": "a@x.com", "otp": api_client.mailer.last_otp()})
        assert resp.status_code == 201
        data = resp.json()
        assert data["message"] == "User verified and registered successfully!"
        assert isinstance(data["userId"], int)

    def test_numeric_otp_accepted(self, api_client: ApiHarness) -> None:
        api_client.client.post(SIGNUP, json={"name": "A", "email": "a@x.com", "password": "p"})
        resp = api_client.client.post(VERIFY, json={"email": "a@x.com", "otp": int(api_client.mailer.last_otp())})
        assert resp.status_code == 201

    def test_expired_400(self, api_client: ApiHarness) -> None:
        api_client.client.post(SIGNUP, json={"name": "A", "email": "a@x.com", "password": "p"})
        api_client.clock.advance(301)
        resp = api_client.client.post(VERIFY, json={"email": "a@x.com", "otp": api_client.mailer.last_otp()})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "otp_expired"
        assert api_client.service.pending.find_by_email("a@x.com") is None

    def test_not_found_400(self, api_client: ApiHarness) -> None:
        resp = api_client.client.post(VERIFY, json={"email": "nobody@x.com", "otp": "123456"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "otp_not_found"

    def test_missing_fields_400(self, api_client: ApiHarness) -> None:
        resp = api_client.client.post(VERIFY, json={"email": "a@x.com"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "bad_request"


class TestSessionRoutes:
    def test_signin_sets_cookie_and_returns_user(self, api_client: ApiHarness) -> None:
        uid = _register(api_client, password="hunter2")
        resp = api_client.client.post(SIGNIN, json={"email": "a@x.com", "password": "hunter2"})
        assert resp.status_code == 200
        assert resp.json() == {"message": "Login successful", "user": {"id": uid, "email": "a@x.com"}}
        assert resp.headers["cache-control"] == "no-store"

        (cookie,) = _set_cookie_headers(resp)
        attrs = _cookie_attrs(cookie)
        assert cookie.startswith("token=")
        assert "httponly" in attrs
        assert "samesite=strict" in attrs
        assert "path=/" in attrs
        assert "secure" not in attrs
        assert not any(a.startswith("max-age") for a in attrs)

    def test_bad_password_and_unknown_email_identical(self, api_client: ApiHarness) -> None:
        _register(api_client, password="hunter2")
        wrong_pw = api_client.client.post(SIGNIN, json={"email": "a@x.com", "password": "nope"})
        unknown = api_client.client.post(SIGNIN, json={"email": "ghost@x.com", "password": "hunter2"})
        assert wrong_pw.status_code == unknown.status_code == 401
        assert wrong_pw.json() == unknown.json()
        assert not _set_cookie_headers(wrong_pw)

    def test_signin_password_over_72_bytes_401(self, api_client: ApiHarness) -> None:
        _register(api_client, password="hunter2")
        for email in ("a@x.com", "ghost@x.com"):
            resp = api_client.client.post(SIGNIN, json={"email": email, "password": "\u00e9" * 40})
            assert resp.status_code == 401
            assert resp.json()["error"]["code"] == "unauthorized"

    def test_me_with_cookie(self, api_client: ApiHarness) -> None:
        uid = _register(api_client, password="hunter2")
        api_client.client.post(SIGNIN, json={"email": "a@x.com", "password": "hunter2"})
        resp = api_client.client.get(ME)
        assert resp.status_code == 200
        assert resp.json() == {"user": {"id": uid, "email": "a@x.com"}}

    def test_me_with_bearer_token(self, api_client: ApiHarness) -> None:
        uid = _register(api_client)
        token = api_client.service.sessions.issue(uid, "a@x.com")
        resp = api_client.client.get(ME, headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200
        assert resp.json()["user"]["id"] == uid

    def test_me_without_session_401(self, api_client: ApiHarness) -> None:
        resp = api_client.client.get(ME)
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_me_with_garbage_token_401(self, api_client: ApiHarness) -> None:
        resp = api_client.client.get(ME, headers={"Authorization": "Bearer garbage"})
        assert resp.status_code == 401

    def test_logout_clears_cookie_then_me_401(self, api_client: ApiHarness) -> None:
        _register(api_client, password="hunter2")
        api_client.client.post(SIGNIN, json={"email": "a@x.com", "password": "hunter2"})
        assert api_client.client.get(ME).status_code == 200

        resp = api_client.client.post(LOGOUT)
        assert resp.status_code == 200
        assert resp.json() == {"message": "Logged out successfully"}
        (cookie,) = _set_cookie_headers(resp)
        attrs = _cookie_attrs(cookie)
        assert cookie.startswith("token=")
        assert "max-age=0" in attrs
        assert "httponly" in attrs
        assert "samesite=strict" in attrs
        assert "path=/" in attrs

        assert api_client.client.get(ME).status_code == 401

    def test_logout_without_session_still_200(self, api_client: ApiHarness) -> None:
        assert api_client.client.post(LOGOUT).status_code == 200


def test_production_cookies_are_secure(api_client: ApiHarness) -> None:
    """With secure_cookies on, both the set and the clear carry the Secure flag."""
    with TestClient(make_app(api_client.service, secure_cookies=True), raise_server_exceptions=True) as client:
        secure_api = ApiHarness(
            client=client, service=api_client.service, mailer=api_client.mailer, clock=api_client.clock
        )
        _register(secure_api)
        signin = client.post(SIGNIN, json={"email": "a@x.com", "password": "p"})
        logout = client.post(LOGOUT)

    assert "secure" in _cookie_attrs(_set_cookie_headers(signin)[0])
    assert "secure" in _cookie_attrs(_set_cookie_headers(logout)[0])

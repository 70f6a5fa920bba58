from datetime import timedelta

from jose import jwt

from support import TEST_SETTINGS, make_client, make_context, seed_users

from epicflow.core.security import create_access_token, decode_token
from epicflow.db.models import UserSession
from epicflow.services import auth as auth_service
from epicflow.services.identity import resolve_bearer_token, resolve_session_code


def test_login_returns_signed_token_valid_for_one_hour():
    client, _, seeded = make_client()

    response = client.post("/api/public/auth/login", json={"email": "dev@epicflow.test", "password": "pw-dev"})
    assert response.status_code == 200
    body = response.json()
    assert body["userId"] == seeded["dev"].user_id
    assert body["role"] == "Developer"
    assert body["tokenType"] == "bearer"

    claims = jwt.decode(body["accessToken"], TEST_SETTINGS.jwt_secret_key, algorithms=["HS256"])
    assert claims["sub"] == seeded["dev"].user_id
    assert claims["role"] == "Developer"


def test_login_email_is_case_insensitive():
    client, _, _ = make_client()

    response = client.post("/api/public/auth/login", json={"email": "DEV@Epicflow.test", "password": "pw-dev"})
    assert response.status_code == 200


def test_login_failures_do_not_reveal_which_factor_was_wrong():
    client, _, _ = make_client()

    wrong_password = client.post("/api/public/auth/login", json={"email": "dev@epicflow.test", "password": "nope"})
    unknown_email = client.post("/api/public/auth/login", json={"email": "ghost@epicflow.test", "password": "pw-dev"})

    assert wrong_password.status_code == 401
    assert unknown_email.status_code == 401
    assert wrong_password.json() == unknown_email.json()


def test_login_rejects_malformed_email_with_field_errors():
    client, _, _ = make_client()

    response = client.post("/api/public/auth/login", json={"email": "not-an-email", "password": "x"})
    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "email"


def test_expired_or_foreign_tokens_do_not_resolve():
    expired = create_access_token(
        TEST_SETTINGS, subject="01J0000000000000000000000A", role="Admin", expires_delta=timedelta(seconds=-1)
    )
    assert decode_token(TEST_SETTINGS, expired) is None
    assert resolve_bearer_token(TEST_SETTINGS, expired) is None

    foreign = jwt.encode({"sub": "someone", "role": "Admin"}, "other-secret", algorithm="HS256")
    assert resolve_bearer_token(TEST_SETTINGS, foreign) is None

    bogus_role = create_access_token(TEST_SETTINGS, subject="someone", role="Owner")
    assert resolve_bearer_token(TEST_SETTINGS, bogus_role) is None


def test_session_code_login_stores_and_delivers_code():
    context = make_context()
    seeded = seed_users(context)
    db = context.session_factory()

    assert auth_service.login_with_session_code(db, context.notifier, "Dev@epicflow.test") is True

    session = db.query(UserSession).one()
    assert len(session.code) == 6 and session.code.isdigit()
    assert context.sent_notifications == [
        {"userId": seeded["dev"].user_id, "email": "dev@epicflow.test", "code": session.code}
    ]

    identity = resolve_session_code(db, session.code)
    assert identity.user_id == seeded["dev"].user_id
    assert identity.role == "Developer"
    db.close()


def test_session_code_login_for_unknown_email_creates_nothing():
    context = make_context()
    db = context.session_factory()

    assert auth_service.login_with_session_code(db, context.notifier, "ghost@epicflow.test") is False
    assert db.query(UserSession).count() == 0
    assert context.sent_notifications == []
    db.close()


def test_logout_invalidates_session_code():
    client, context, _ = make_client()

    requested = client.post("/api/public/auth/session-code", json={"email": "manager@epicflow.test"})
    assert requested.status_code == 202
    code = context.sent_notifications[-1]["code"]

    assert client.post("/api/public/auth/logout", json={"sessionCode": code}).status_code == 204
    assert client.post("/api/public/auth/logout", json={"sessionCode": code}).status_code == 400

    db = context.session_factory()
    assert resolve_session_code(db, code) is None
    db.close()


def test_session_code_request_for_unknown_email_is_404():
    client, _, _ = make_client()

    response = client.post("/api/public/auth/session-code", json={"email": "ghost@epicflow.test"})
    assert response.status_code == 404

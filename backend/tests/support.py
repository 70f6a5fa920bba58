import json

import httpx
from fastapi.testclient import TestClient

from epicflow.core.config import Settings
from epicflow.core.context import AppContext, build_context
from epicflow.core.security import create_access_token
from epicflow.main import create_app
from epicflow.services import users as user_service
from epicflow.services.identity import Identity
from epicflow.services.notification import WebhookNotifier
from epicflow.services.oracle import AuthorizationOracle, InMemoryOracle


TEST_SETTINGS = Settings(
    app_name="epicflow test",
    app_env="test",
    database_url="sqlite://",
    jwt_secret_key="test-secret",
    jwt_algorithm="HS256",
    jwt_access_expire_minutes=60,
    permit_token="",
    permit_pdp_url="http://pdp.test",
    permit_api_url="http://api.test",
    permit_tenant="default",
    webhook_url="http://hooks.test/session-code",
    cors_origins="http://localhost:3000",
    log_level="INFO",
)

SEED_USERS = (
    ("admin", "Admin"),
    ("manager", "Manager"),
    ("dev", "Developer"),
    ("dev2", "Developer"),
)


def make_notifier() -> tuple[WebhookNotifier, list[dict]]:
    sent: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        sent.append(json.loads(request.content))
        return httpx.Response(200)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    return WebhookNotifier(TEST_SETTINGS.webhook_url, client=client), sent


def make_context(oracle: AuthorizationOracle | None = None, settings: Settings = TEST_SETTINGS) -> AppContext:
    notifier, sent = make_notifier()
    context = build_context(settings, oracle=oracle or InMemoryOracle(record_checks=True), notifier=notifier)
    context.sent_notifications = sent
    return context


def seed_users(context: AppContext) -> dict[str, Identity]:
    db = context.session_factory()
    try:
        seeded = {}
        for name, role in SEED_USERS:
            user = user_service.create_user(
                db,
                context.facts,
                email=f"{name}@epicflow.test",
                first_name=name.title(),
                last_name="Tester",
                password=f"pw-{name}",
                role=role,
            )
            seeded[name] = Identity(user_id=user.id, role=user.role)
        return seeded
    finally:
        db.close()


def make_client(oracle: AuthorizationOracle | None = None) -> tuple[TestClient, AppContext, dict[str, Identity]]:
    context = make_context(oracle)
    seeded = seed_users(context)
    client = TestClient(create_app(context))
    return client, context, seeded


def auth_headers(identity: Identity) -> dict[str, str]:
    token = create_access_token(TEST_SETTINGS, subject=identity.user_id, role=identity.role)
    return {"Authorization": f"Bearer {token}"}

import logging
from dataclasses import dataclass, field

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from epicflow.core.config import Settings, get_settings
from epicflow.db.session import init_db, make_engine, make_session_factory
from epicflow.services.notification import WebhookNotifier
from epicflow.services.oracle import AuthorizationOracle, FactSync, InMemoryOracle, PermitOracle

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Everything a request needs, owned by the process entry point."""

    settings: Settings
    engine: Engine
    session_factory: sessionmaker
    oracle: AuthorizationOracle
    notifier: WebhookNotifier
    facts: FactSync = field(init=False)

    def __post_init__(self) -> None:
        self.facts = FactSync(self.oracle)

    def close(self) -> None:
        self.oracle.close()
        self.notifier.close()
        self.engine.dispose()


def build_oracle(settings: Settings) -> AuthorizationOracle:
    if not settings.permit_token:
        logger.warning("PERMIT_IO_TOKEN is not set, using the in-memory authorization oracle")
        return InMemoryOracle()
    return PermitOracle(
        token=settings.permit_token,
        pdp_url=settings.permit_pdp_url,
        api_url=settings.permit_api_url,
        tenant=settings.permit_tenant,
    )


def build_context(
    settings: Settings | None = None,
    oracle: AuthorizationOracle | None = None,
    notifier: WebhookNotifier | None = None,
) -> AppContext:
    settings = settings or get_settings()
    engine = make_engine(settings.database_url)
    init_db(engine)
    return AppContext(
        settings=settings,
        engine=engine,
        session_factory=make_session_factory(engine),
        oracle=oracle or build_oracle(settings),
        notifier=notifier or WebhookNotifier(settings.webhook_url),
    )

from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError

from karyalay.api.routes import metrics, ping, portal, tickets
from karyalay.core.config import Settings, get_settings
from karyalay.core.logging import configure_logging, init_tracer, shutdown_tracer
from karyalay.db.session import create_engine_from_dsn, create_session_factory
from karyalay.subscriptions import RenewalService, SubscriptionRepository
from karyalay.tickets import (
    LoggingTicketNotifier,
    TicketMessageRepository,
    TicketNotifier,
    TicketRepository,
    TicketService,
    WebhookTicketNotifier,
)


def build_notifier(settings: Settings) -> TicketNotifier:
    if settings.notification_webhook_url:
        return WebhookTicketNotifier(
            url=settings.notification_webhook_url,
            app_url=settings.app_url,
            timeout=settings.notification_timeout,
        )
    return LoggingTicketNotifier()


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
    settings = get_settings()
    logger = configure_logging(settings)
    tracer_provider = init_tracer(settings)

    app.state.logger = logger
    app.state.tracer_provider = tracer_provider
    app.state.ticket_service = None
    app.state.renewal_service = None
    db_engine = None
    try:
        db_engine = create_engine_from_dsn(settings.database_dsn)
        session_factory = create_session_factory(db_engine)
        app.state.ticket_service = TicketService(
            TicketRepository(session_factory),
            TicketMessageRepository(session_factory),
            notifier=build_notifier(settings),
        )
        app.state.renewal_service = RenewalService(SubscriptionRepository(session_factory))
        app.state.db_session_factory = session_factory
    except SQLAlchemyError:
        # Services stay unset; routes answer 503. The schema itself comes from `karyalay migrate`.
        logger.exception("Database initialisation failed")
    try:
        yield
    finally:
        if db_engine is not None:
            await db_engine.dispose()
        shutdown_tracer(tracer_provider)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.include_router(ping.router)
    app.include_router(tickets.router)
    app.include_router(portal.router)
    app.include_router(metrics.router)
    return app


app = create_app()

"""Application container: everything built once at startup and shared by requests."""

from dataclasses import dataclass, field
from typing import Optional

from fastapi import Request
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from imperium.config import Settings
from imperium.database import create_db_engine, create_session_factory
from imperium.logging_config import get_logger
from imperium.services.alert_service import AlertConfig, configure_alerts
from imperium.services.llm import LLMProvider, build_providers
from imperium.services.meta_service import ChannelAdapter, build_adapters
from imperium.services.zadarma_service import ZadarmaClient

logger = get_logger("dependencies")


@dataclass
class AppContainer:
    settings: Settings
    engine: Optional[Engine]
    session_factory: Optional[sessionmaker]
    providers: list[LLMProvider] = field(default_factory=list)
    adapters: dict[str, ChannelAdapter] = field(default_factory=dict)
    telephony: Optional[ZadarmaClient] = None
    alerts: AlertConfig = field(default_factory=AlertConfig)


def build_container(settings: Settings) -> AppContainer:
    engine = create_db_engine(settings.database_url, echo=settings.debug)
    container = AppContainer(
        settings=settings,
        engine=engine,
        session_factory=create_session_factory(engine),
        providers=build_providers(settings),
        adapters=build_adapters(settings),
        telephony=ZadarmaClient(
            settings.zadarma_api_key,
            settings.zadarma_api_secret,
            api_url=settings.zadarma_api_url,
            timeout_seconds=settings.zadarma_timeout_seconds,
        ),
        alerts=AlertConfig(bot_token=settings.alert_bot_token, chat_id=settings.alert_chat_id),
    )
    configure_alerts(container.alerts)
    logger.info(
        "Container built",
        extra={"context": {"providers": [p.name for p in container.providers if p.is_configured]}},
    )
    return container


def close_container(container: Optional[AppContainer]) -> None:
    if container is not None and container.engine is not None:
        container.engine.dispose()


def get_container(request: Request) -> AppContainer:
    return request.app.state.container

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

import httpx
import requests
from supabase import Client, ClientOptions, create_client

from .academic_gateway import AcademicGateway, AcademicGatewayDeps
from .chat_webhook_client import ChatWebhookClient
from .config import PortalConfig, load_config
from .identity import SupabaseIdentityProvider
from .observability import GatewayMetrics
from .portal_service import PortalService, PortalServiceDeps


@dataclass(frozen=True)
class PortalContainer:
    config: PortalConfig
    identity: SupabaseIdentityProvider
    gateway: AcademicGateway
    chat: ChatWebhookClient
    service: PortalService


def build_backend_client(cfg: PortalConfig) -> Client:
    connect, read = cfg.backend_timeout_sec
    options = ClientOptions(
        postgrest_client_timeout=httpx.Timeout(read, connect=connect),
        auto_refresh_token=True,
        persist_session=False,
    )
    return create_client(cfg.supabase_url, cfg.supabase_anon_key, options=options)


def build_portal(
    config: Optional[PortalConfig] = None,
    *,
    client: Optional[Client] = None,
    chat_session_factory: Callable[[], requests.Session] = requests.Session,
) -> PortalContainer:
    cfg = config or load_config()
    backend = client if client is not None else build_backend_client(cfg)
    identity = SupabaseIdentityProvider(backend)
    gateway = AcademicGateway(
        AcademicGatewayDeps(client=backend, periods=list(cfg.academic_periods), metrics=GatewayMetrics())
    )
    chat = ChatWebhookClient(
        url=cfg.webhook_url,
        timeout_sec=cfg.chat_timeout_sec,
        retry_attempts=cfg.chat_retry_attempts,
        retry_enabled=cfg.chat_retry_enabled,
        ping_timeout_sec=cfg.webhook_timeout_ms / 1000.0,
        session_factory=chat_session_factory,
    )
    service = PortalService(PortalServiceDeps(identity=identity, gateway=gateway, chat=chat, config=cfg))
    return PortalContainer(config=cfg, identity=identity, gateway=gateway, chat=chat, service=service)

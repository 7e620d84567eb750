"""
Application Composition Root.

Builds the whole dependency graph by constructor injection: config,
storage, gateway, session, navigator, route guard, services and the
cross-instance storage watcher.  Nothing else in the package creates a
``RequestGateway`` or a ``SessionManager``; every caller receives the
ones built here.

Usage::

    ctx = create_app_context()
    ctx.session.check_auth_status()
    try:
        clinics = await ctx.services["clinic_service"].list()
    finally:
        await ctx.aclose()
"""

from __future__ import annotations

import asyncio
import sys
from typing import Optional, TextIO

import httpx

from medclinic.auth import SessionManager
from medclinic.config import AppConfig, get_config
from medclinic.gateway import RequestGateway
from medclinic.logger import StructuredLogger
from medclinic.routing import Navigator, RouteGuard, RouteRegistry, default_routes
from medclinic.services import ServiceContainer, create_services
from medclinic.services.storage_watcher import StorageWatcherService
from medclinic.storage import FileStorage, KeyValueStorage


class AppContext:
    """Every long-lived collaborator of one client instance."""

    def __init__(
        self,
        config: AppConfig,
        logger: StructuredLogger,
        storage: KeyValueStorage,
        gateway: RequestGateway,
        session: SessionManager,
        navigator: Navigator,
        routes: RouteRegistry,
        guard: RouteGuard,
        services: ServiceContainer,
        watcher: Optional[StorageWatcherService] = None,
    ) -> None:
        self.config = config
        self.logger = logger
        self.storage = storage
        self.gateway = gateway
        self.session = session
        self.navigator = navigator
        self.routes = routes
        self.guard = guard
        self.services = services
        self.watcher = watcher

    async def aclose(self) -> None:
        """Stop the watcher, detach the session and close the gateway."""
        if self.watcher is not None:
            self.watcher.stop()
        self.session.unbind_gateway()
        await self.gateway.aclose()
        self.logger.debug("Application context closed.")


def create_app_context(
    config: Optional[AppConfig] = None,
    *,
    storage: Optional[KeyValueStorage] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    loop: Optional[asyncio.AbstractEventLoop] = None,
    log_stream: Optional[TextIO] = None,
    watch_storage: Optional[bool] = None,
) -> AppContext:
    """Wire one client instance.

    Args:
        config: Configuration; defaults to the ``.env``-backed singleton.
        storage: Durable storage; defaults to a ``FileStorage`` at
            ``config.storage_path``.
        transport: Optional ``httpx`` transport for the gateway.
        loop: Event loop the storage watcher marshals events onto.  Defaults
            to the running loop when called from a coroutine.
        log_stream: Console stream for logs (``sys.stderr`` by default so
            command output on stdout stays machine-readable).
        watch_storage: Override ``STORAGE_WATCH_ENABLED``.  Only a
            ``FileStorage`` can be watched.
    """
    cfg = config or get_config()
    stream = log_stream or sys.stderr

    def _logger(name: str) -> StructuredLogger:
        return StructuredLogger(
            name=name,
            level=cfg.log_level,
            stream=stream,
            log_file=cfg.LOG_FILE,
            max_bytes=cfg.LOG_MAX_BYTES,
            backup_count=cfg.LOG_BACKUP_COUNT,
        )

    logger = _logger("medclinic")

    if storage is None:
        storage = FileStorage(
            cfg.storage_path,
            _logger("storage"),
            encrypted=cfg.STORAGE_ENCRYPTED,
        )

    gateway = RequestGateway(cfg, storage, _logger("gateway"), transport=transport)

    navigator = Navigator(_logger("navigation"), initial_path=cfg.HOME_PATH)
    session = SessionManager(
        storage,
        _logger("session"),
        navigator=navigator.navigate,
        login_path=cfg.LOGIN_PATH,
    )
    session.bind_gateway(gateway)

    routes = default_routes(
        _logger("routing"),
        login_path=cfg.LOGIN_PATH,
        home_path=cfg.HOME_PATH,
    )
    guard = RouteGuard(routes, session, home_path=cfg.HOME_PATH, login_path=cfg.LOGIN_PATH)
    services = create_services(gateway, session, _logger("services"))

    watcher: Optional[StorageWatcherService] = None
    enabled = cfg.STORAGE_WATCH_ENABLED if watch_storage is None else watch_storage
    if enabled and isinstance(storage, FileStorage):
        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.warning(
                    "No event loop to marshal storage events onto; they will "
                    "be handled on the watcher thread."
                )
        watcher = StorageWatcherService(
            storage,
            storage.path,
            _logger("storage_watcher"),
            loop=loop,
        )
        watcher.set_callback(session.handle_storage_event)
        watcher.start()

    logger.info("Application context ready.", extra={"api_base_url": cfg.API_BASE_URL})
    return AppContext(
        config=cfg,
        logger=logger,
        storage=storage,
        gateway=gateway,
        session=session,
        navigator=navigator,
        routes=routes,
        guard=guard,
        services=services,
        watcher=watcher,
    )

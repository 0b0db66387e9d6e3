"""
Dependency Injection container for the history server.

This container uses the `dependency-injector` library to wire together all
the components of the application, such as the lifecycle controller and its
infrastructure adapters, based on the application's configuration.
"""

from dependency_injector import containers, providers
import httpx

from ..application.domain import *
from ..application.service import HistoryServer
from ..settings import load_settings

from .frontend import StaticFileFrontend, build_ssl_context
from .mirror import LocalMirror
from .processing import JsonArchiveDecoder
from .resolver import SchemeStoreResolver


class Container(containers.DeclarativeContainer):
    """DI container for wiring the application components."""

    cli_args = providers.Configuration()

    config = providers.Singleton(load_settings, extra_file=cli_args.config)

    http_client = providers.Singleton(
        httpx.AsyncClient,
        timeout=config.provided.http.timeout,
    )

    store_resolver: providers.Factory[StoreResolver] = providers.Factory(
        SchemeStoreResolver,
        client=http_client,
        token=config.provided.http.token,
        timeout=config.provided.http.timeout,
    )

    decoder: providers.Factory[ArchiveDecoder] = providers.Factory(
        JsonArchiveDecoder,
    )

    mirror: providers.Factory[ArchiveMirror] = providers.Factory(LocalMirror)

    ssl_context = providers.Callable(
        build_ssl_context,
        enabled=config.provided.web.ssl_enabled,
        certfile=config.provided.web.ssl_certfile,
        keyfile=config.provided.web.ssl_keyfile,
    )

    frontend: providers.Factory[WebFrontend] = providers.Factory(
        StaticFileFrontend,
        address=config.provided.web.address,
        port=config.provided.web.port,
        ssl_context=ssl_context,
    )

    history_server = providers.Factory(
        HistoryServer,
        archive_dirs=config.provided.history.archive_dirs,
        resolver=store_resolver,
        mirror_factory=mirror.provider,
        decoder=decoder,
        frontend=frontend,
        refresh_interval_ms=config.provided.history.refresh_interval_ms,
        web_refresh_interval_ms=config.provided.web.refresh_interval_ms,
        web_dir=config.provided.history.web_dir,
        delimiter=config.provided.history.delimiter,
    )

"""
Open list-page sessions.
Keeps one controller per (caller, resource) in memory with TTL expiration,
and one collection cache per caller so pages share fetched collections.
Single-process only.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog

from config import settings
from exceptions import PageSessionNotFoundError
from integrations.parks_api import ApiSession, ParksApiClient
from services.collection_cache import RemoteCollectionCache, make_resource_loader
from services.resource_registry import RESOURCES, get_resource
from services.table_controller import TabularResourceController

logger = structlog.get_logger(__name__)


@dataclass
class _Scope:
    client: ParksApiClient
    cache: RemoteCollectionCache


_sessions: dict[tuple[str, str], tuple[datetime, TabularResourceController]] = {}
_scopes: dict[str, _Scope] = {}


def _ttl() -> timedelta:
    return timedelta(minutes=settings.page_session_ttl_minutes)


def _scope_for(session: ApiSession) -> _Scope:
    scope = _scopes.get(session.scope)
    if scope is None or scope.client.session != session:
        if scope is not None:
            _close_scope_sessions(session.scope)
            _release_scope(session.scope)
        client = ParksApiClient(session)
        cache = RemoteCollectionCache(
            loader=make_resource_loader(client, RESOURCES),
            stale_after=settings.cache_stale_seconds,
        )
        scope = _Scope(client=client, cache=cache)
        _scopes[session.scope] = scope
    return scope


def open_page(session: ApiSession, resource_key: str) -> TabularResourceController:
    """Return the caller's controller for resource, mounting it if needed."""
    config = get_resource(resource_key)
    _cleanup_expired()

    # Resolve the scope first: new credentials close stale controllers
    scope = _scope_for(session)
    key = (session.scope, config.key)
    entry = _sessions.get(key)
    if entry is not None:
        controller = entry[1]
    else:
        controller = TabularResourceController(config, scope.cache, scope.client)
        logger.info("page_session_opened", scope=session.scope, resource=config.key)

    _sessions[key] = (datetime.now() + _ttl(), controller)
    return controller


def get_page(session: ApiSession, resource_key: str) -> TabularResourceController:
    """
    Existing controller for resource.

    Raises:
        PageSessionNotFoundError: If the page is not open (or expired)
    """
    config = get_resource(resource_key)
    _cleanup_expired()
    key = (session.scope, config.key)
    entry = _sessions.get(key)
    if entry is None:
        raise PageSessionNotFoundError(config.key)
    _sessions[key] = (datetime.now() + _ttl(), entry[1])
    return entry[1]


def close_page(session: ApiSession, resource_key: str) -> bool:
    """Unmount a page. Returns False if it was not open."""
    config = get_resource(resource_key)
    entry = _sessions.pop((session.scope, config.key), None)
    if entry is None:
        return False
    entry[1].close()
    logger.info("page_session_closed", scope=session.scope, resource=config.key)
    _release_if_unused(session.scope)
    return True


def reset() -> None:
    """Close every page and drop every cache."""
    for _, controller in _sessions.values():
        controller.close()
    _sessions.clear()
    for scope in list(_scopes):
        _release_scope(scope)


def _close_scope_sessions(scope: str) -> None:
    for key in [k for k in _sessions if k[0] == scope]:
        _, controller = _sessions.pop(key)
        controller.close()


def _release_scope(scope: str) -> None:
    """Drop a caller's cache and HTTP connections."""
    entry = _scopes.pop(scope, None)
    if entry is None:
        return
    entry.cache.clear()
    entry.client.close()
    logger.debug("page_scope_released", scope=scope)


def _release_if_unused(scope: str) -> None:
    if not any(k[0] == scope for k in _sessions):
        _release_scope(scope)


def _cleanup_expired() -> None:
    """Close all expired pages and release callers left with none."""
    now = datetime.now()
    expired = [k for k, (exp, _) in _sessions.items() if now > exp]
    for k in expired:
        _, controller = _sessions.pop(k)
        controller.close()
        logger.info("page_session_expired", scope=k[0], resource=k[1])
    for scope in {k[0] for k in expired}:
        _release_if_unused(scope)

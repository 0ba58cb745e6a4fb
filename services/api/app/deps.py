"""Service wiring and FastAPI dependencies.

Services are built once at startup (see main.lifespan) around a single
MetricsStore and NotificationDispatcher. Tests swap them via
`app.dependency_overrides` or by calling `init_services()` with a fake store.
"""

from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException

from app.services.notifications import NotificationDispatcher
from app.services.ranking_cache import MemoryCacheBackend, RankingCache, RedisCacheBackend
from app.services.social import SocialActions
from app.services.threads import ThreadStore
from app.settings import CacheBackend, Settings, get_settings
from app.stores.metrics import MetricsStore, UserRecord


@dataclass
class Services:
    store: MetricsStore
    dispatcher: NotificationDispatcher
    ranking_cache: RankingCache
    threads: ThreadStore
    social: SocialActions


# Built on startup
_services: Services | None = None


def build_services(store: MetricsStore, settings: Settings | None = None) -> Services:
    """Create the service graph for one process."""
    settings = settings or get_settings()
    dispatcher = NotificationDispatcher(store)

    if settings.ranking_cache_backend is CacheBackend.REDIS:
        backend = RedisCacheBackend(ttl_seconds=settings.ranking_cache_ttl_seconds)
    else:
        backend = MemoryCacheBackend()

    return Services(
        store=store,
        dispatcher=dispatcher,
        ranking_cache=RankingCache(
            store,
            ttl_seconds=settings.ranking_cache_ttl_seconds,
            trending_window=settings.trending_window,
            backend=backend,
        ),
        threads=ThreadStore(
            store,
            dispatcher,
            reply_depth_policy=settings.reply_depth_policy,
            max_length=settings.comment_max_length,
            replies_per_thread=settings.replies_per_thread,
        ),
        social=SocialActions(store, dispatcher),
    )


def init_services(store: MetricsStore, settings: Settings | None = None) -> Services:
    global _services
    _services = build_services(store, settings)
    return _services


async def close_services() -> None:
    """Let in-flight notification dispatches finish, then forget the graph."""
    global _services
    if _services is not None:
        await _services.dispatcher.drain()
        _services = None


def get_services() -> Services:
    if _services is None:
        raise RuntimeError("Services not initialized. Call init_services() first.")
    return _services


def get_ranking_cache(services: Services = Depends(get_services)) -> RankingCache:
    return services.ranking_cache


def get_thread_store(services: Services = Depends(get_services)) -> ThreadStore:
    return services.threads


def get_dispatcher(services: Services = Depends(get_services)) -> NotificationDispatcher:
    return services.dispatcher


def get_social_actions(services: Services = Depends(get_services)) -> SocialActions:
    return services.social


async def get_current_user(
    x_user_id: int | None = Header(default=None, alias="X-User-Id"),
    services: Services = Depends(get_services),
) -> UserRecord:
    """Resolve the acting user set by the upstream auth layer."""
    user = await services.store.get_user(x_user_id) if x_user_id is not None else None
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={
                "error": {
                    "code": "UNAUTHENTICATED",
                    "message": "Authentication required",
                    "detail": None,
                }
            },
        )
    return user

"""Trending endpoints.

GET  /v1/trending/projects      - trending projects (cached)
GET  /v1/trending/tags          - popular tags (cached)
GET  /v1/trending/technologies  - popular technologies (cached)
GET  /v1/trending/cache-stats   - ranking cache observability
POST /v1/trending/clear-cache   - drop every cached ranking

Routers are thin: call services for business logic.
"""

from fastapi import APIRouter, Depends, Query

from app.deps import get_ranking_cache
from app.schemas import (
    CacheStatsResponse,
    MessageResponse,
    PopularTagsResponse,
    PopularTechnologiesResponse,
    TrendingProjectsResponse,
)
from app.services.ranking_cache import RankingCache, RankingKind

router = APIRouter()


@router.get("/projects", response_model=TrendingProjectsResponse)
async def get_trending_projects(
    limit: int = Query(default=10, ge=1, le=50, description="Max projects to return"),
    cache: RankingCache = Depends(get_ranking_cache),
) -> TrendingProjectsResponse:
    projects = await cache.get(RankingKind.TRENDING_PROJECTS, limit)
    return TrendingProjectsResponse(projects=projects, count=len(projects))


@router.get("/tags", response_model=PopularTagsResponse)
async def get_popular_tags(
    limit: int = Query(default=20, ge=1, le=50, description="Max tags to return"),
    cache: RankingCache = Depends(get_ranking_cache),
) -> PopularTagsResponse:
    tags = await cache.get(RankingKind.POPULAR_TAGS, limit)
    return PopularTagsResponse(tags=tags, count=len(tags))


@router.get("/technologies", response_model=PopularTechnologiesResponse)
async def get_popular_technologies(
    limit: int = Query(default=20, ge=1, le=50, description="Max technologies to return"),
    cache: RankingCache = Depends(get_ranking_cache),
) -> PopularTechnologiesResponse:
    technologies = await cache.get(RankingKind.POPULAR_TECHNOLOGIES, limit)
    return PopularTechnologiesResponse(technologies=technologies, count=len(technologies))


@router.get("/cache-stats", response_model=CacheStatsResponse)
async def get_cache_stats(cache: RankingCache = Depends(get_ranking_cache)) -> CacheStatsResponse:
    return CacheStatsResponse(**await cache.stats())


@router.post("/clear-cache", response_model=MessageResponse)
async def clear_cache(cache: RankingCache = Depends(get_ranking_cache)) -> MessageResponse:
    await cache.clear()
    return MessageResponse(message="Cache cleared successfully")

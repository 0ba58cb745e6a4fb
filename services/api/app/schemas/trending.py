"""Schemas for the trending endpoints (/v1/trending/*)."""

from typing import Any

from pydantic import BaseModel, Field


class TrendingProjectsResponse(BaseModel):
    projects: list[dict[str, Any]]
    count: int = Field(ge=0)


class PopularTagsResponse(BaseModel):
    tags: list[dict[str, Any]]
    count: int = Field(ge=0)


class PopularTechnologiesResponse(BaseModel):
    technologies: list[dict[str, Any]]
    count: int = Field(ge=0)


class CacheEntryStats(BaseModel):
    key: str
    timestamp: float
    age: float


class CacheStatsResponse(BaseModel):
    size: int = Field(ge=0)
    keys: list[str]
    entries: list[CacheEntryStats]

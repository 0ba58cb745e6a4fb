#!/usr/bin/env python3
"""Seed database with demo data.

Creates:
- Users (one admin, one moderator, regular users)
- Published projects with tags/technologies
- A couple of comment threads, upvotes and follows

Social actions go through the services (not raw inserts) so counters and
notifications end up exactly as they would in production.

Seed script is idempotent: it does nothing if the demo users already exist.

Usage:
    cd services/api
    python -m scripts.seed
"""

import asyncio
import json
import os
import sys
from datetime import datetime, timedelta, timezone

# Add parent to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv  # noqa: E402
from sqlalchemy import select  # noqa: E402

from app.deps import build_services  # noqa: E402
from app.models import Project, User  # noqa: E402
from app.stores.metrics import UserRecord, UserRole  # noqa: E402
from app.stores.postgres import close_db, create_tables, get_session, init_db  # noqa: E402
from app.stores.repository import PostgresMetricsStore  # noqa: E402

load_dotenv()

# ============================================================
# Demo data
# ============================================================

USERS = [
    {"username": "ada", "role": UserRole.ADMIN},
    {"username": "grace", "role": UserRole.MODERATOR},
    {"username": "linus", "role": UserRole.USER},
    {"username": "guido", "role": UserRole.USER},
    {"username": "margaret", "role": UserRole.USER},
]

PROJECTS = [
    {
        "author": "linus",
        "title": "Tiny Git",
        "short_description": "A content-addressable store in 500 lines",
        "tags": ["vcs", "education"],
        "technologies": ["C", "Make"],
    },
    {
        "author": "guido",
        "title": "Snake Charmer",
        "short_description": "An interpreter for a toy language",
        "tags": ["compilers", "education"],
        "technologies": ["Python"],
    },
    {
        "author": "margaret",
        "title": "Apollo Guidance Sim",
        "short_description": "Simulator for the AGC instruction set",
        "tags": ["space", "emulation"],
        "technologies": ["Rust", "WebAssembly"],
    },
]


async def seed_users() -> dict[str, UserRecord]:
    users: dict[str, UserRecord] = {}
    async with get_session() as session:
        existing = await session.execute(select(User).where(User.username == USERS[0]["username"]))
        if existing.scalar_one_or_none():
            print("Demo users already present, skipping seed")
            return {}

        for entry in USERS:
            user = User(username=entry["username"], role=entry["role"])
            session.add(user)
            await session.flush()
            users[user.username] = UserRecord(id=user.id, username=user.username, role=user.role)
            print(f"  + user {user.username} ({user.role.value})")
    return users


async def seed_projects(users: dict[str, UserRecord]) -> list[int]:
    project_ids: list[int] = []
    now = datetime.now(timezone.utc)
    async with get_session() as session:
        for offset, entry in enumerate(PROJECTS):
            project = Project(
                author_id=users[entry["author"]].id,
                title=entry["title"],
                short_description=entry["short_description"],
                tags_json=json.dumps(entry["tags"]),
                technologies_json=json.dumps(entry["technologies"]),
                status="published",
                visibility="public",
                upvote_count=0,
                comment_count=0,
                created_at=now - timedelta(days=len(PROJECTS) - offset),
            )
            session.add(project)
            await session.flush()
            project_ids.append(project.id)
            print(f"  + project {project.title}")
    return project_ids


async def seed_engagement(users: dict[str, UserRecord], project_ids: list[int]) -> None:
    services = build_services(PostgresMetricsStore())

    for username in ("guido", "margaret", "grace"):
        await services.social.toggle_upvote(project_ids[0], users[username])
    await services.social.toggle_upvote(project_ids[1], users["linus"])
    await services.social.toggle_follow(users["linus"].id, users["guido"])

    top = await services.threads.create(project_ids[0], users["guido"], "Lovely minimal design.")
    await services.threads.create(project_ids[0], users["linus"], "Thanks!", parent_id=top.id)
    await services.threads.create(project_ids[1], users["margaret"], "Does it support closures?")

    await services.dispatcher.drain()
    print("  + upvotes, follows, comments and notifications")


async def main() -> None:
    print("Seeding database...")
    await init_db()
    try:
        await create_tables()
        users = await seed_users()
        if users:
            project_ids = await seed_projects(users)
            await seed_engagement(users, project_ids)
        print("Done.")
    finally:
        await close_db()


if __name__ == "__main__":
    asyncio.run(main())

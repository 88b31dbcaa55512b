"""Seed script: load sample data into the Commit database.

Clears every collection, then creates:
1. 8 team members (the first one is the lead and the placeholder current user)
2. 5 agreements with randomized signatures (active ~90%, pending ~40%)
3. 30 deliverables drawn from 12 templates
4. 150 status updates, 60% of them within the last 14 days

Not idempotent: every run starts from empty tables.

Usage:
    python -m scripts.seed          # against DATABASE_URL from .env
    pytest tests/scripts/test_seed.py  # against aiosqlite
"""

import asyncio
import logging
import random
import sys
from datetime import datetime, timedelta
from typing import Any

from src.config.logging import configure_logging
from src.config.settings import get_settings
from src.models.common import utc_now
from src.repositories.gateway import CLEAR_ORDER, DataGateway, GatewayError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Fixture data
# ---------------------------------------------------------------------------

TEAM_MEMBERS = [
    {"name": "Kai Tanaka", "email": "kai.t@example.com", "role": "lead"},
    {"name": "Elara Vance", "email": "elara.v@example.com", "role": "member"},
    {"name": "Marcus Jenson", "email": "marcus.j@example.com", "role": "member"},
    {"name": "Priya Patel", "email": "priya.p@example.com", "role": "member"},
    {"name": "Jordan Hayes", "email": "jordan.h@example.com", "role": "member"},
    {"name": "Nina Rodriguez", "email": "nina.r@example.com", "role": "member"},
    {"name": "Liam O'Connor", "email": "liam.o@example.com", "role": "member"},
    {"name": "Sophie Chen", "email": "sophie.c@example.com", "role": "member"},
]

AVATAR_BASE = "https://api.dicebear.com/7.x/avataaars/svg?seed="

AGREEMENTS = [
    {
        "title": "Core Working Hours",
        "description": "We agree to be online and responsive between 10 AM and 3 PM EST.",
        "status": "active",
    },
    {
        "title": "Code Review Response Time",
        "description": "PRs should be reviewed within 24 hours of posting.",
        "status": "active",
    },
    {
        "title": "No Meeting Fridays",
        "description": "Fridays are preserved for deep work; no scheduled internal meetings.",
        "status": "active",
    },
    {
        "title": "Documentation First",
        "description": "All new features must include documentation before merging.",
        "status": "pending",
    },
    {
        "title": "Slack Availability Status",
        "description": "Update Slack status when OOO or in deep work mode.",
        "status": "active",
    },
]

DELIVERABLE_TEMPLATES = [
    ("Q3 Financial Report", "completed"),
    ("Mobile App Redesign", "in-progress"),
    ("API Migration", "at-risk"),
    ("User Onboarding Flow", "in-progress"),
    ("Marketing Campaign Launch", "upcoming"),
    ("Security Audit", "completed"),
    ("Database Optimization", "in-progress"),
    ("Customer Feedback System", "upcoming"),
    ("Internal Tools Dashboard", "at-risk"),
    ("Website Accessibility Fixes", "completed"),
    ("Analytics Dashboard", "in-progress"),
    ("Payment Gateway Integration", "upcoming"),
]

STATUSES = ["completed", "in-progress", "at-risk", "upcoming"]

DELIVERABLE_COUNT = 30
UPDATE_COUNT = 150

ACTIVE_SIGN_RATE = 0.9
PENDING_SIGN_RATE = 0.4
RECENT_UPDATE_SHARE = 0.6
HELP_REQUEST_RATE = 0.1


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------


async def clear_all(gateway: DataGateway) -> None:
    for collection in CLEAR_ORDER:
        await gateway.clear(collection)


async def seed_members(gateway: DataGateway, *, now: datetime) -> list[dict[str, Any]]:
    # Staggered created_at keeps the lead first in creation order.
    rows = [
        {
            **member,
            "avatar_url": AVATAR_BASE + member["name"].split()[0],
            "created_at": now - timedelta(minutes=len(TEAM_MEMBERS) - i),
        }
        for i, member in enumerate(TEAM_MEMBERS)
    ]
    return await gateway.insert("team_members", rows)


async def seed_agreements(
    gateway: DataGateway,
    members: list[dict[str, Any]],
    rng: random.Random,
) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    agreements = await gateway.insert(
        "agreements", [{**a, "created_by": members[0]["id"]} for a in AGREEMENTS]
    )

    signatures = []
    for agreement in agreements:
        rate = ACTIVE_SIGN_RATE if agreement["status"] == "active" else PENDING_SIGN_RATE
        for member in members:
            if rng.random() < rate:
                signatures.append({"agreement_id": agreement["id"], "member_id": member["id"]})
    inserted = await gateway.insert("agreement_signatures", signatures)
    return agreements, inserted


def _progress_for(status: str, rng: random.Random) -> int:
    if status == "completed":
        return 100
    if status == "upcoming":
        return 0
    if status == "at-risk":
        return rng.randrange(0, 80)
    return rng.randrange(10, 100)


async def seed_deliverables(
    gateway: DataGateway,
    members: list[dict[str, Any]],
    rng: random.Random,
    *,
    now: datetime,
) -> list[dict[str, Any]]:
    payload = []
    for _ in range(DELIVERABLE_COUNT):
        title, template_status = rng.choice(DELIVERABLE_TEMPLATES)
        status = rng.choice(STATUSES) if rng.random() > 0.7 else template_status
        payload.append({
            "title": f"{title} - Phase {rng.randint(1, 3)}",
            "description": f"Implementation tasks for {title}",
            "owner_id": rng.choice(members)["id"],
            "status": status,
            "progress": _progress_for(status, rng),
            "deadline": (now + timedelta(days=rng.uniform(-10, 20))).date(),
        })
    return await gateway.insert("deliverables", payload)


async def seed_updates(
    gateway: DataGateway,
    members: list[dict[str, Any]],
    deliverables: list[dict[str, Any]],
    rng: random.Random,
    *,
    now: datetime,
) -> list[dict[str, Any]]:
    payload = []
    for _ in range(UPDATE_COUNT):
        if rng.random() < RECENT_UPDATE_SHARE:
            days_ago = rng.randrange(0, 14)
        else:
            days_ago = rng.randrange(15, 60)
        deliverable = rng.choice(deliverables)
        payload.append({
            "content": f"Update on {deliverable['title']}: Making progress with the new components.",
            "author_id": rng.choice(members)["id"],
            "deliverable_id": deliverable["id"],
            "is_help_request": rng.random() < HELP_REQUEST_RATE,
            "created_at": now - timedelta(days=days_ago),
        })
    return await gateway.insert("updates", payload)


async def seed_all(
    gateway: DataGateway,
    *,
    rng: random.Random | None = None,
    now: datetime | None = None,
) -> dict:
    """Clear and repopulate every collection. Raises ``GatewayError`` on any failure."""
    rng = rng or random.Random()
    now = now or utc_now()

    logger.info("Clearing existing data")
    await clear_all(gateway)

    members = await seed_members(gateway, now=now)
    agreements, signatures = await seed_agreements(gateway, members, rng)
    deliverables = await seed_deliverables(gateway, members, rng, now=now)
    updates = await seed_updates(gateway, members, deliverables, rng, now=now)

    return {
        "members": len(members),
        "agreements": len(agreements),
        "signatures": len(signatures),
        "deliverables": len(deliverables),
        "updates": len(updates),
    }


async def _run_seed(gateway: DataGateway | None = None) -> int:
    """Seed the configured database. Returns the process exit code."""
    if gateway is None:
        from src.db.session import async_session_factory
        gateway = DataGateway(async_session_factory)

    try:
        result = await seed_all(gateway)
    except GatewayError as exc:
        logger.error("Seed failed [%s]: %s", exc.code.value, exc.message)
        return 1
    except Exception:
        logger.exception("Seed failed")
        return 1

    print("Seed complete.")
    print(f"  Members:      {result['members']}")
    print(f"  Agreements:   {result['agreements']} ({result['signatures']} signatures)")
    print(f"  Deliverables: {result['deliverables']}")
    print(f"  Updates:      {result['updates']}")
    return 0


def main() -> None:
    configure_logging(get_settings())
    sys.exit(asyncio.run(_run_seed()))


if __name__ == "__main__":
    main()

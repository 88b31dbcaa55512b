"""FastAPI dependency injection for the Commit services.

One ``CommitServices`` container per application, built on first use from
the session factory and cached on ``app.state``. The aggregators keep
in-memory state between requests (pending deletions, running undo
countdowns), so they must outlive a single request. Each aggregator
getter reloads its view before handing it to the endpoint.
"""

from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config.settings import Settings, get_settings
from src.db.session import get_session_factory
from src.engine.agreements import AgreementAggregator
from src.engine.analytics import AnalyticsEngine
from src.engine.base import LoadableView
from src.engine.deliverables import DeliverableAggregator
from src.engine.identity import FirstMemberResolver
from src.engine.team import TeamRoster
from src.engine.undo import UndoOrchestrator
from src.engine.updates import UpdateFeed
from src.repositories.gateway import DataGateway


@dataclass
class CommitServices:
    session_factory: async_sessionmaker[AsyncSession]
    gateway: DataGateway
    roster: TeamRoster
    agreements: AgreementAggregator
    deliverables: DeliverableAggregator
    feed: UpdateFeed
    analytics: AnalyticsEngine
    undo: UndoOrchestrator


def build_services(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
) -> CommitServices:
    gateway = DataGateway(session_factory)
    resolver = FirstMemberResolver(gateway)
    agreements = AgreementAggregator(gateway, resolver)
    return CommitServices(
        session_factory=session_factory,
        gateway=gateway,
        roster=TeamRoster(gateway, resolver),
        agreements=agreements,
        deliverables=DeliverableAggregator(gateway, resolver),
        feed=UpdateFeed(gateway, resolver),
        analytics=AnalyticsEngine(gateway),
        undo=UndoOrchestrator(agreements, duration_ms=settings.UNDO_WINDOW_MS),
    )


async def get_services(
    request: Request,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    settings: Settings = Depends(get_settings),
) -> CommitServices:
    services: CommitServices | None = getattr(request.app.state, "services", None)
    if services is None or services.session_factory is not session_factory:
        services = build_services(session_factory, settings)
        request.app.state.services = services
    return services


async def _loaded(view: LoadableView) -> None:
    await view.refresh()
    if view.error is not None:
        raise HTTPException(status_code=503, detail=view.error)


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


async def get_roster(services: CommitServices = Depends(get_services)) -> TeamRoster:
    await _loaded(services.roster)
    return services.roster


async def get_agreements(
    services: CommitServices = Depends(get_services),
) -> AgreementAggregator:
    await _loaded(services.agreements)
    return services.agreements


async def get_deliverables(
    services: CommitServices = Depends(get_services),
) -> DeliverableAggregator:
    await _loaded(services.deliverables)
    return services.deliverables


async def get_feed(services: CommitServices = Depends(get_services)) -> UpdateFeed:
    await _loaded(services.feed)
    return services.feed


async def get_analytics(services: CommitServices = Depends(get_services)) -> AnalyticsEngine:
    await _loaded(services.analytics)
    return services.analytics


async def get_undo(
    services: CommitServices = Depends(get_services),
    agreements: AgreementAggregator = Depends(get_agreements),  # noqa: ARG001
) -> UndoOrchestrator:
    return services.undo

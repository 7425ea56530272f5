"""Matching core: scoring, admission control, swipe ledger and match creation."""

from dataclasses import dataclass

from apps.matching.admission import AdmissionControl, LocalRateLimiter, RateLimitService, quotas_from_settings
from apps.matching.compatibility import CompatibilityService
from apps.matching.events import EventPublisher, EventSink
from apps.matching.ledger import SwipeLedger
from apps.matching.matches import MatchCounter, MatchCreator
from apps.matching.profiles import KeyValueProfileStore
from apps.matching.scoring import CompatibilityScorer
from apps.workers.background import BackgroundTaskQueue
from core.config import Settings
from core.store import KeyValueStore


@dataclass
class MatchingServices:
    """Wired service graph shared by the API routers."""

    profiles: KeyValueProfileStore
    compatibility: CompatibilityService
    admission: AdmissionControl
    matches: MatchCreator
    ledger: SwipeLedger
    tasks: BackgroundTaskQueue


def build_services(
    settings: Settings,
    store: KeyValueStore,
    rate_limit_service: RateLimitService,
    event_sink: EventSink,
    counters: MatchCounter,
    fallback: LocalRateLimiter | None = None,
    tasks: BackgroundTaskQueue | None = None,
) -> MatchingServices:
    """Wire the matching services around their collaborators. Does not start the task queue."""
    tasks = tasks or BackgroundTaskQueue(
        maxsize=settings.background_queue_size,
        workers=settings.background_workers,
        task_timeout=settings.background_task_timeout_seconds,
    )
    events = EventPublisher(event_sink, tasks)
    profiles = KeyValueProfileStore(store)
    admission = AdmissionControl(
        rate_limit_service,
        fallback or LocalRateLimiter(quotas_from_settings(settings)),
        timeout=settings.rate_limit_timeout_seconds,
    )
    matches = MatchCreator(store, events, counters, tasks)
    return MatchingServices(
        profiles=profiles,
        compatibility=CompatibilityService(profiles, CompatibilityScorer()),
        admission=admission,
        matches=matches,
        ledger=SwipeLedger(store, admission, matches, events),
        tasks=tasks,
    )


__all__ = ["MatchingServices", "build_services"]

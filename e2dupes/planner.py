"""
Removal planning.

The planner only decides *what* to remove. Deletion itself, including the
cleanup of bouquet entries, is left to the settings repository.

Deutsch:
    Planung von Löschvorgängen.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Sequence, Set

from .models import Bouquet, ScanResult, Service
from .repository import SettingsRepository

log = logging.getLogger(__name__)

REASON_SELECTED = "selected"
REASON_UNBOUQUETED = "not in any bouquet"


@dataclass(frozen=True)
class RemovalPlan:
    service_ids: FrozenSet[str] = field(default_factory=frozenset)
    reason: str = REASON_SELECTED

    @property
    def is_empty(self) -> bool:
        return not self.service_ids

    def __len__(self) -> int:
        return len(self.service_ids)


def plan_selected_removal(service_ids: Iterable[str]) -> RemovalPlan:
    return RemovalPlan(service_ids=frozenset(service_ids), reason=REASON_SELECTED)


def plan_unbouqueted_removal(services: Iterable[Service], bouquets: Sequence[Bouquet]) -> RemovalPlan:
    """
    Plan removal of every service no bouquet refers to.

    This covers all services, not only duplicates. With no bouquets at all
    the plan is empty: there is nothing to compare against.
    """

    if not bouquets:
        log.debug("there are no bouquets, skip planning removal of services not in bouquets")
        return RemovalPlan(reason=REASON_UNBOUQUETED)

    referenced = referenced_service_ids(bouquets)
    candidates = frozenset(
        service.service_id for service in services if service.service_id.lower() not in referenced
    )
    log.debug("%d services are not referenced by any of %d bouquets", len(candidates), len(bouquets))
    return RemovalPlan(service_ids=candidates, reason=REASON_UNBOUQUETED)


def select_unbouqueted_duplicates(result: ScanResult) -> Set[str]:
    """Ids of duplicate services that are in no bouquet."""

    return {view.service_id for view in result.iter_services() if not view.bouquets}


def referenced_service_ids(bouquets: Iterable[Bouquet]) -> Set[str]:
    return {
        item.service_id.lower()
        for bouquet in bouquets
        for item in bouquet.iter_service_items()
        if item.service_id
    }


def execute_plan(repository: SettingsRepository, plan: RemovalPlan) -> int:
    if plan.is_empty:
        log.debug("removal plan (%s) is empty, nothing to remove", plan.reason)
        return 0
    removed = repository.remove_services(plan.service_ids)
    log.info("removed %d services (%s)", removed, plan.reason)
    return removed

from __future__ import annotations

from pathlib import Path

import pytest

from e2dupes.errors import UnknownServiceId
from e2dupes.matcher import match_bouquets
from e2dupes.models import Settings
from e2dupes.planner import (
    REASON_UNBOUQUETED,
    execute_plan,
    plan_selected_removal,
    plan_unbouqueted_removal,
    referenced_service_ids,
    select_unbouqueted_duplicates,
)
from e2dupes.repository import SettingsRepository
from e2dupes.scanner import scan_duplicates

REFERENCED = {
    "132f:00c00000:0437:0001",
    "1331:00c00000:0437:0001",
    "283d:00c00000:0441:0001",
    "0001:01000000:0010:0002",
}


@pytest.fixture()
def repository(enigma_settings: Path) -> SettingsRepository:
    return SettingsRepository.load(enigma_settings)


def test_referenced_service_ids(repository: SettingsRepository) -> None:
    assert referenced_service_ids(repository.bouquets) == REFERENCED


def test_unbouqueted_plan_covers_all_services(repository: SettingsRepository) -> None:
    plan = plan_unbouqueted_removal(repository.services, repository.bouquets)

    assert plan.reason == REASON_UNBOUQUETED
    assert len(plan) == 10
    assert plan.service_ids.isdisjoint(REFERENCED)
    assert "0203:eeee0000:0002:0085" in plan.service_ids


def test_unbouqueted_plan_without_bouquets_is_empty(repository: SettingsRepository) -> None:
    plan = plan_unbouqueted_removal(repository.services, [])

    assert plan.is_empty
    assert execute_plan(repository, plan) == 0
    assert len(repository) == 14


def test_selected_plan_is_pass_through() -> None:
    plan = plan_selected_removal(["a", "b", "a"])

    assert plan.service_ids == frozenset({"a", "b"})
    assert plan_selected_removal([]).is_empty


def test_select_unbouqueted_duplicates(repository: SettingsRepository) -> None:
    result = scan_duplicates(repository.services)
    match_bouquets(list(result.iter_services()), repository.bouquets)

    selected = select_unbouqueted_duplicates(result)

    assert len(selected) == 9
    assert selected.isdisjoint(REFERENCED)
    assert "1330:00c00000:0437:0001" in selected


def test_execute_selected_plan_reduces_service_count(repository: SettingsRepository) -> None:
    ids = ["1330:00c00000:0437:0001", "283E:00C00000:0441:0001"]

    removed = execute_plan(repository, plan_selected_removal(ids))

    assert removed == 2
    assert len(repository) == 12
    assert repository.get("283e:00c00000:0441:0001") is None


def test_unknown_id_aborts_whole_removal(repository: SettingsRepository) -> None:
    ids = ["1330:00c00000:0437:0001", "dead:00000000:0000:0000"]

    with pytest.raises(UnknownServiceId) as excinfo:
        execute_plan(repository, plan_selected_removal(ids))

    assert excinfo.value.service_ids == ["dead:00000000:0000:0000"]
    assert len(repository) == 14


def test_removal_cleans_bouquet_items(repository: SettingsRepository) -> None:
    favourites = repository.bouquets[0]
    before = len(favourites.items)

    repository.remove_services(["132f:00c00000:0437:0001"])

    assert len(favourites.items) == before - 2
    assert all(item.service_id != "132f:00c00000:0437:0001" for item in favourites.items)
    assert len(repository.bouquets[1].items) == 1


def test_empty_repository_plan() -> None:
    repository = SettingsRepository(Settings())

    plan = plan_unbouqueted_removal(repository.services, repository.bouquets)

    assert execute_plan(repository, plan) == 0

from __future__ import annotations

from e2dupes.models import Bouquet, BouquetItem, BouquetItemKind, Service, Settings, Transponder
from e2dupes.planner import execute_plan, plan_unbouqueted_removal
from e2dupes.repository import SettingsRepository

TRANSPONDER = Transponder(
    frequency=11778000,
    namespace=0xC00000,
    transport_stream_id=1,
    network_id=1,
    delivery="sat",
)


def _service(service_id: str, name: str) -> Service:
    return Service(service_id=service_id, name=name, service_type=1, transponder=TRANSPONDER)


def _settings() -> Settings:
    kept = _service("1330:00C00000:0001:0001", "ORF2 HD")
    return Settings(
        services={
            "132F:00C00000:0001:0001": _service("132F:00C00000:0001:0001", "ORF1 HD"),
            kept.service_id: kept,
        },
        bouquets=[
            Bouquet(
                name="Favourites",
                items=[
                    BouquetItem(
                        kind=BouquetItemKind.SERVICE,
                        service_ref="1:0:1:1330:1:1:C00000:0:0:0:",
                        service_id="1330:00c00000:0001:0001",
                    )
                ],
            )
        ],
    )


def test_upper_case_ids_are_found() -> None:
    repository = SettingsRepository(_settings())

    assert repository.get("132F:00C00000:0001:0001") is not None
    assert repository.get("132f:00c00000:0001:0001") is not None


def test_upper_case_ids_can_be_removed() -> None:
    repository = SettingsRepository(_settings())

    assert repository.remove_services(["132F:00C00000:0001:0001"]) == 1
    assert len(repository) == 1


def test_unbouqueted_removal_with_upper_case_ids() -> None:
    repository = SettingsRepository(_settings())

    plan = plan_unbouqueted_removal(repository.services, repository.bouquets)

    assert execute_plan(repository, plan) == 1
    assert [service.name for service in repository.services] == ["ORF2 HD"]

"""
Duplicate detection over a settings snapshot.

Services are duplicates when they share a transponder and their names are
equal ignoring case. The result is arranged as a presentation tree:
satellite groups ordered by orbital position, followed by one aggregate
group for cable and one for terrestrial transponders.

Deutsch:
    Duplikat-Erkennung über einen Settings-Snapshot.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import MalformedSatellitePosition, ScanError
from .labels import CABLE_GROUP_LABEL, TERRESTRIAL_GROUP_LABEL
from .models import (
    Satellite,
    ScanResult,
    Service,
    ServiceWithBouquets,
    TransponderGroup,
    TransponderWithServices,
)

log = logging.getLogger(__name__)

POSITION_PATTERN = re.compile(r"^[+-]?[0-9]+$")

ClusterKey = Tuple[Tuple[int, int, int, int], str]


def scan_duplicates(
    services: Iterable[Service],
    *,
    cable_label: str = CABLE_GROUP_LABEL,
    terrestrial_label: str = TERRESTRIAL_GROUP_LABEL,
) -> ScanResult:
    """
    Find duplicate services and build the transponder group tree.

    Raises ``MalformedSatellitePosition`` when a satellite position cannot be
    parsed.
    """

    service_list = list(services)
    duplicates = _collect_duplicates(service_list)
    log.debug("found %d transponders with duplicate services", len(duplicates))

    sat: List[TransponderWithServices] = []
    cable: List[TransponderWithServices] = []
    terrestrial: List[TransponderWithServices] = []
    for entry in duplicates:
        delivery = entry.transponder.delivery
        if delivery == "sat":
            sat.append(entry)
        elif delivery == "cable":
            cable.append(entry)
        elif delivery == "terrestrial":
            terrestrial.append(entry)
        else:
            raise ScanError(f"transponder {entry.transponder.key} has unknown delivery type {delivery!r}")

    groups = _group_by_satellite(sat)
    if cable:
        groups.append(TransponderGroup(description=cable_label, transponders=cable))
    if terrestrial:
        groups.append(TransponderGroup(description=terrestrial_label, transponders=terrestrial))

    total = sum(group.service_count() for group in groups)
    result = ScanResult(groups=groups, total=total, total_services=len(service_list))
    if result.no_duplicates:
        log.info("no duplicates found among %d services", len(service_list))
    else:
        log.info("found %d duplicate services in %d groups", total, len(groups))
    return result


def parse_position(satellite: Satellite) -> int:
    text = satellite.position.strip()
    if not POSITION_PATTERN.match(text):
        raise MalformedSatellitePosition(satellite.name, satellite.position)
    return int(text)


def _collect_duplicates(services: List[Service]) -> List[TransponderWithServices]:
    clusters: Dict[ClusterKey, List[Service]] = {}
    for service in services:
        key = (service.transponder.identity, service.name.lower())
        clusters.setdefault(key, []).append(service)

    by_transponder: Dict[Tuple[int, int, int, int], TransponderWithServices] = {}
    for (identity, _name), members in clusters.items():
        if len(members) < 2:
            continue
        entry = by_transponder.get(identity)
        if entry is None:
            entry = TransponderWithServices(transponder=members[0].transponder)
            by_transponder[identity] = entry
        entry.services.extend(ServiceWithBouquets(service=service) for service in members)

    for entry in by_transponder.values():
        entry.services.sort(key=lambda view: view.name)
    return list(by_transponder.values())


def _group_by_satellite(entries: List[TransponderWithServices]) -> List[TransponderGroup]:
    by_satellite: Dict[Satellite, List[TransponderWithServices]] = {}
    for entry in sorted(entries, key=lambda item: item.frequency):
        satellite: Optional[Satellite] = entry.transponder.satellite
        if satellite is None:
            raise ScanError(f"satellite transponder {entry.transponder.key} has no satellite")
        by_satellite.setdefault(satellite, []).append(entry)

    positions = {satellite: parse_position(satellite) for satellite in by_satellite}
    ordered = sorted(by_satellite.items(), key=lambda pair: positions[pair[0]])
    return [
        TransponderGroup(description=satellite.name, transponders=transponders, satellite=satellite)
        for satellite, transponders in ordered
    ]

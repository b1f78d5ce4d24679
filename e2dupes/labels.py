"""
Label templates for the duplicate tree.

Plain text only: the presentation layer decides about styling and icons.

Deutsch:
    Beschriftungen für den Duplikat-Baum.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from .models import ScanResult, ServiceWithBouquets, TransponderGroup, TransponderWithServices

CABLE_GROUP_LABEL = "DVB-C services"
TERRESTRIAL_GROUP_LABEL = "DVB-T services"
NO_DUPLICATES_MESSAGE = "No duplicates found."
INDENT = "    "


def group_label(group: TransponderGroup) -> str:
    if group.satellite is not None:
        return f"{group.description} ({group.satellite.position_label})"
    return group.description


def transponder_label(entry: TransponderWithServices) -> str:
    trans = entry.transponder
    if trans.delivery == "sat" and trans.polarization:
        return f"Transponder: {trans.frequency} {trans.polarization[0]}"
    return f"Transponder: {trans.frequency}"


def service_label(view: ServiceWithBouquets) -> str:
    provider = view.provider
    label = view.name
    if provider:
        label = f"{label}    ({provider})"
        if view.bouquets:
            label = f"{label} / ({len(view.bouquets)})"
    elif view.bouquets:
        label = f"{label}    ({len(view.bouquets)})"
    return label


def summary_text(total_services: int, total_duplicates: int) -> str:
    return f"Total: {total_services} services / {total_duplicates} duplicates"


def transponder_details(entry: TransponderWithServices) -> str:
    trans = entry.transponder
    if trans.delivery == "sat":
        text = (
            f"Frequency: {trans.frequency} {(trans.polarization or '?')[0]} / Symbolrate: {trans.symbol_rate} / "
            f"System: {trans.system}\n"
            f"FEC: {trans.fec} / Inversion: {trans.inversion} / TSID: {trans.transport_stream_id:04X} / "
            f"NID: {trans.network_id:04X}\n"
        )
    else:
        text = (
            f"Frequency: {trans.frequency} / TSID: {trans.transport_stream_id:04X} / "
            f"NID: {trans.network_id:04X}\n"
        )
    return text + f"Duplicates: {len(entry.services)}"


def service_details(view: ServiceWithBouquets) -> str:
    lines: List[str] = []
    if view.bouquets:
        lines.append(f"Bouquets: {', '.join(view.bouquet_names())}")
    parts = [f"{name}: {value}" for name, value in view.service.cached_pids]
    behaviour = view.service.behaviour_flags
    if behaviour:
        parts.append(f"flags: {', '.join(behaviour)}")
    if parts:
        lines.append("PID: " + " / ".join(parts))
    return "\n".join(lines)


def render_tree(result: ScanResult) -> List[str]:
    lines = [summary_text(result.total_services, result.total)]
    if result.no_duplicates:
        lines.append(NO_DUPLICATES_MESSAGE)
        return lines
    for group in result.groups:
        lines.append(group_label(group))
        for entry in group.transponders:
            lines.append(f"{INDENT}{transponder_label(entry)}")
            for view in entry.services:
                lines.append(f"{INDENT * 2}{service_label(view)}  [{view.service_id}]")
    return lines


def result_to_dict(result: ScanResult) -> Dict[str, Any]:
    return {
        "outcome": result.outcome.value,
        "total_services": result.total_services,
        "total_duplicates": result.total,
        "groups": [_group_to_dict(group) for group in result.groups],
    }


def _group_to_dict(group: TransponderGroup) -> Dict[str, Any]:
    position: Optional[str] = group.position or None
    return {
        "label": group_label(group),
        "position": position,
        "transponders": [
            {
                "label": transponder_label(entry),
                "key": entry.transponder.key,
                "frequency": entry.frequency,
                "services": [
                    {
                        "id": view.service_id,
                        "name": view.name,
                        "label": service_label(view),
                        "provider": view.provider,
                        "bouquets": view.bouquet_names(),
                    }
                    for view in entry.services
                ],
            }
            for entry in group.transponders
        ],
    }

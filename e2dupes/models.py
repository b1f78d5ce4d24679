"""
Shared data models for the e2dupes toolchain.

The snapshot types (Satellite, Transponder, Service, Bouquet, Settings) are
owned by the settings repository. The derived types at the bottom are built
fresh for every duplicate scan and thrown away afterwards.

Deutsch:
    Gemeinsame Datenmodelle für Settings-Snapshot und Duplikat-Suche.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

DeliverySystem = str  # "sat", "cable", "terrestrial"

# Index of the cached PID type as stored in the first byte of a "c:" flag.
CACHED_PID_TYPES: Sequence[str] = (
    "vpid",
    "apid",
    "tpid",
    "pcrpid",
    "ac3pid",
    "vtype",
    "achannel",
    "ac3delay",
    "pcmdelay",
    "subtitle",
    "atype",
    "apid2",
)

# Bits of the "f:" flag of a lamedb service entry.
SERVICE_FLAG_BITS: Sequence[Tuple[int, str]] = (
    (0x01, "keep"),
    (0x02, "hide"),
    (0x04, "use cached pids"),
    (0x08, "hold name"),
    (0x40, "new found"),
)


@dataclass(frozen=True)
class Satellite:
    """
    Orbital slot a satellite transponder belongs to.

    ``position`` keeps the raw signed string from ``satellites.xml`` (tenths
    of a degree, negative values are west).
    """

    name: str
    position: str

    @property
    def position_label(self) -> str:
        try:
            value = int(self.position.strip())
        except ValueError:
            return self.position
        direction = "W" if value < 0 else "E"
        return f"{abs(value) / 10:.1f}{direction}"


@dataclass(frozen=True)
class Transponder:
    """
    Normalised representation of a single DVB transponder/multiplex.

    Deutsch:
        Normalisierte Repräsentation eines Transponders / Multiplex.
    """

    frequency: int
    namespace: int
    transport_stream_id: int
    network_id: int
    delivery: DeliverySystem
    satellite: Optional[Satellite] = None
    symbol_rate: Optional[int] = None
    polarization: Optional[str] = None
    fec: Optional[str] = None
    inversion: Optional[str] = None
    system: Optional[str] = None
    modulation: Optional[str] = None
    raw: str = ""

    @property
    def key(self) -> str:
        return f"{self.namespace:08x}:{self.transport_stream_id:04x}:{self.network_id:04x}"

    @property
    def identity(self) -> Tuple[int, int, int, int]:
        return (self.frequency, self.namespace, self.transport_stream_id, self.network_id)


@dataclass(frozen=True)
class ServiceFlag:
    kind: str
    value: str


@dataclass(frozen=True)
class Service:
    """
    Service (channel) definition, referencing its transponder.

    Deutsch:
        Service-/Sender-Definition, referenziert den zugehörigen Transponder.
    """

    service_id: str
    name: str
    service_type: int
    transponder: Transponder
    flags: Tuple[ServiceFlag, ...] = field(default_factory=tuple)
    prog_number: int = 0

    @property
    def provider(self) -> Optional[str]:
        for flag in self.flags:
            if flag.kind == "p":
                return flag.value
        return None

    @property
    def cached_pids(self) -> List[Tuple[str, str]]:
        """Decoded ``c:`` flags as ``(pid type, hex value)`` pairs."""

        pids: List[Tuple[str, str]] = []
        for flag in self.flags:
            if flag.kind != "c" or len(flag.value) < 3:
                continue
            try:
                index = int(flag.value[:2], 16)
            except ValueError:
                continue
            name = CACHED_PID_TYPES[index] if index < len(CACHED_PID_TYPES) else f"cache{index}"
            pids.append((name, flag.value[2:].lstrip("0") or "0"))
        return pids

    @property
    def behaviour_flags(self) -> List[str]:
        """Names of the bits set in the ``f:`` flag."""

        names: List[str] = []
        for flag in self.flags:
            if flag.kind != "f":
                continue
            try:
                bits = int(flag.value, 16)
            except ValueError:
                continue
            names.extend(name for bit, name in SERVICE_FLAG_BITS if bits & bit)
        return names

    @property
    def flags_text(self) -> str:
        return ",".join(f"{flag.kind}:{flag.value}" for flag in self.flags)


class BouquetItemKind(str, enum.Enum):
    SERVICE = "service"
    MARKER = "marker"
    BOUQUET = "bouquet"
    STREAM = "stream"
    OTHER = "other"


@dataclass
class BouquetItem:
    """
    Entry within a userbouquet. Only ``SERVICE`` items point at a lamedb service.
    """

    kind: BouquetItemKind
    service_ref: str
    service_id: Optional[str] = None
    description: Optional[str] = None

    @property
    def is_service(self) -> bool:
        return self.kind is BouquetItemKind.SERVICE


@dataclass(eq=False)
class Bouquet:
    """
    Bouquet (channel list) of items. Compared by identity.

    Deutsch:
        Bouquet (Senderliste); Vergleich über die Objektidentität.
    """

    name: str
    items: List[BouquetItem] = field(default_factory=list)
    category: str = "tv"
    source_path: Optional[Path] = None

    def iter_service_items(self) -> Iterator[BouquetItem]:
        return (item for item in self.items if item.is_service)


@dataclass
class Settings:
    """
    Complete settings snapshot: satellites, transponders, services, bouquets.

    Deutsch:
        Vollständiger Settings-Snapshot.
    """

    services: Dict[str, Service] = field(default_factory=dict)
    transponders: Dict[str, Transponder] = field(default_factory=dict)
    satellites: Dict[str, Satellite] = field(default_factory=dict)
    bouquets: List[Bouquet] = field(default_factory=list)
    metadata: Dict[str, str] = field(default_factory=dict)
    directory: Optional[Path] = None

    def iter_services(self) -> Iterable[Service]:
        return self.services.values()


# Derived, per-scan structures.


@dataclass(eq=False)
class ServiceWithBouquets:
    service: Service
    bouquets: List[Bouquet] = field(default_factory=list)

    @property
    def service_id(self) -> str:
        return self.service.service_id

    @property
    def name(self) -> str:
        return self.service.name

    @property
    def provider(self) -> Optional[str]:
        return self.service.provider

    def bouquet_names(self) -> List[str]:
        return sorted(bouquet.name for bouquet in self.bouquets)


@dataclass
class TransponderWithServices:
    transponder: Transponder
    services: List[ServiceWithBouquets] = field(default_factory=list)

    @property
    def frequency(self) -> int:
        return self.transponder.frequency


@dataclass
class TransponderGroup:
    description: str
    transponders: List[TransponderWithServices] = field(default_factory=list)
    satellite: Optional[Satellite] = None

    @property
    def position(self) -> str:
        return self.satellite.position if self.satellite else ""

    def service_count(self) -> int:
        return sum(len(trans.services) for trans in self.transponders)


class ScanOutcome(str, enum.Enum):
    DUPLICATES_FOUND = "duplicates_found"
    NO_DUPLICATES_FOUND = "no_duplicates_found"


@dataclass
class ScanResult:
    groups: List[TransponderGroup]
    total: int
    total_services: int = 0

    @property
    def outcome(self) -> ScanOutcome:
        if self.total == 0:
            return ScanOutcome.NO_DUPLICATES_FOUND
        return ScanOutcome.DUPLICATES_FOUND

    @property
    def no_duplicates(self) -> bool:
        return self.outcome is ScanOutcome.NO_DUPLICATES_FOUND

    def iter_services(self) -> Iterator[ServiceWithBouquets]:
        for group in self.groups:
            for trans in group.transponders:
                yield from trans.services

    def find(self, service_id: str) -> Optional[ServiceWithBouquets]:
        wanted = service_id.lower()
        for view in self.iter_services():
            if view.service_id.lower() == wanted:
                return view
        return None

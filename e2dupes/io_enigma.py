"""
Enigma2 settings handling (lamedb/lamedb5, satellites.xml and bouquets).

This is the file-format side of the settings repository. The duplicate
scanner itself only works on the in-memory models.

Deutsch:
    Enigma2 Ein-/Ausgabe (lamedb/lamedb5, satellites.xml und Bouquets).
"""

from __future__ import annotations

import logging
import re
import shutil
import unicodedata
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple
from xml.etree import ElementTree as ET

from .errors import SettingsLoadError
from .models import (
    Bouquet,
    BouquetItem,
    BouquetItemKind,
    Satellite,
    Service,
    ServiceFlag,
    Settings,
    Transponder,
)

log = logging.getLogger(__name__)

SERVICE_REF_PATTERN = re.compile(r"^[0-9a-fA-F]+(?::[0-9a-fA-F]+)+:?$")
LAMEDB5_SERVICE_PATTERN = re.compile(r'^s:([0-9a-fA-F:]+),"(.*)"(?:,([^"]*))?$')
STREAM_SERVICE_TYPES = {"4097", "5001", "5002", "5003", "8193"}

DELIVERY_CHARS = {"s": "sat", "c": "cable", "t": "terrestrial"}
POLARISATIONS = {"0": "H", "1": "V", "2": "L", "3": "R"}
INVERSIONS = {"0": "Off", "1": "On", "2": "Auto"}
SAT_FEC = {
    "0": "Auto",
    "1": "1/2",
    "2": "2/3",
    "3": "3/4",
    "4": "5/6",
    "5": "7/8",
    "6": "8/9",
    "7": "3/5",
    "8": "4/5",
    "9": "9/10",
    "15": "None",
}
SAT_SYSTEMS = {"0": "DVB-S", "1": "DVB-S2"}

RawTransponder = Tuple[str, str]


def load_settings(path: Path) -> Settings:
    """
    Load an Enigma2 settings folder (or the path of its lamedb file).

    Deutsch:
        Lädt einen Enigma2-Settings-Ordner (oder den Pfad seiner lamedb).
    """

    path = Path(path)
    if not path.exists():
        raise SettingsLoadError(f"input path {path} not found")
    base_path = path if path.is_dir() else path.parent

    lamedb = path if path.is_file() else _pick_lamedb(base_path)
    satellites = _parse_satellites_xml(base_path / "satellites.xml")
    transponders, services, version = _parse_lamedb(lamedb, satellites)
    bouquets = _parse_bouquets(base_path)

    settings = Settings(
        services=services,
        transponders=transponders,
        satellites={sat.position: sat for sat in satellites.values()},
        bouquets=bouquets,
        directory=base_path,
    )
    for sat in {trans.satellite for trans in transponders.values() if trans.satellite}:
        settings.satellites.setdefault(sat.position, sat)
    settings.metadata["source"] = str(base_path)
    settings.metadata["lamedb_version"] = version
    settings.metadata["service_count"] = str(len(services))
    settings.metadata["transponder_count"] = str(len(transponders))
    settings.metadata["bouquet_count"] = str(len(bouquets))
    log.info(
        "parsed enigma2 settings %s -> %d services, %d transponders, %d bouquets",
        base_path,
        len(services),
        len(transponders),
        len(bouquets),
    )
    return settings


def write_settings(settings: Settings, target_dir: Path) -> Path:
    """
    Serialise settings back into an Enigma2 folder (lamedb v4 + bouquets).

    Deutsch:
        Schreibt die Settings zurück in einen Enigma2-Ordner (lamedb v4 + Bouquets).
    """

    target_dir = Path(target_dir)
    target_dir.mkdir(parents=True, exist_ok=True)

    _write_lamedb(settings, target_dir / "lamedb")
    _write_bouquet_files(settings, target_dir)
    if settings.directory is not None:
        satellites_xml = Path(settings.directory) / "satellites.xml"
        target_xml = target_dir / "satellites.xml"
        if satellites_xml.exists() and satellites_xml.resolve() != target_xml.resolve():
            shutil.copyfile(satellites_xml, target_xml)
    log.info("wrote %d services and %d bouquets to %s", len(settings.services), len(settings.bouquets), target_dir)
    return target_dir


def make_service_id(sid: int, namespace: int, tsid: int, onid: int) -> str:
    return f"{sid:04x}:{namespace:08x}:{tsid:04x}:{onid:04x}"


def service_id_from_ref(ref: str) -> Optional[str]:
    """
    Map an Enigma2 service reference (``1:0:19:283D:3FB:1:C00000:0:0:0:``)
    to the lamedb service identity, or None if it does not parse.
    """

    parts = ref.split(":")
    if len(parts) < 7:
        return None
    try:
        sid, tsid, onid, namespace = (int(value, 16) for value in parts[3:7])
    except ValueError:
        return None
    return make_service_id(sid, namespace, tsid, onid)


def classify_service_ref(ref: str) -> BouquetItem:
    parts = ref.split(":")
    if "FROM BOUQUET" in ref:
        return BouquetItem(kind=BouquetItemKind.BOUQUET, service_ref=ref)
    try:
        flags = int(parts[1]) if len(parts) > 1 else 0
    except ValueError:
        flags = 0
    if flags & 0x40:
        return BouquetItem(kind=BouquetItemKind.MARKER, service_ref=ref)
    url = parts[10] if len(parts) > 10 else ""
    if parts[0] in STREAM_SERVICE_TYPES or "%3a" in url.lower():
        return BouquetItem(kind=BouquetItemKind.STREAM, service_ref=ref)
    service_id = service_id_from_ref(ref)
    if service_id is None:
        log.warning("unparsable bouquet service reference %r", ref)
        return BouquetItem(kind=BouquetItemKind.OTHER, service_ref=ref)
    return BouquetItem(kind=BouquetItemKind.SERVICE, service_ref=ref, service_id=service_id)


def _pick_lamedb(base_path: Path) -> Path:
    for name in ("lamedb5", "lamedb"):
        candidate = base_path / name
        if candidate.exists():
            return candidate
    raise SettingsLoadError(f"lamedb/lamedb5 missing in {base_path}")


def _parse_satellites_xml(path: Path) -> Dict[str, Satellite]:
    if not path.exists():
        return {}
    try:
        root = ET.parse(path).getroot()
    except ET.ParseError as exc:
        raise SettingsLoadError(f"failed to parse {path}: {exc}") from exc
    satellites: Dict[str, Satellite] = {}
    for node in root.iter("sat"):
        position = (node.get("position") or "").strip()
        name = _clean_text(node.get("name"))
        if position and name:
            satellites[position] = Satellite(name=name, position=position)
    log.debug("loaded %d satellites from %s", len(satellites), path)
    return satellites


def _parse_lamedb(
    path: Path, satellites: Dict[str, Satellite]
) -> Tuple[Dict[str, Transponder], Dict[str, Service], str]:
    with path.open("r", encoding="utf-8", errors="replace") as fh:
        lines = [line.rstrip("\r\n") for line in fh]

    if not lines or not lines[0].startswith("eDVB services"):
        raise SettingsLoadError(f"{path} does not look like a lamedb file")

    if "/5/" in lines[0]:
        raw_transponders, raw_services = _split_lamedb5(lines, path)
        version = "5"
    else:
        raw_transponders, raw_services = _split_lamedb4(lines)
        version = "4"

    transponders: Dict[str, Transponder] = {}
    for key_line, data_line in raw_transponders:
        transponder = _parse_transponder_entry(key_line, data_line, satellites, path)
        transponders[transponder.key] = transponder

    services: Dict[str, Service] = {}
    for descriptor, name, flags in raw_services:
        service = _parse_service_entry(descriptor, name, flags, transponders, path)
        if service is not None:
            services[service.service_id] = service
    return transponders, services, version


def _split_lamedb4(lines: List[str]) -> Tuple[List[RawTransponder], List[Tuple[str, str, str]]]:
    state: Optional[str] = None
    index = 1
    transponders: List[RawTransponder] = []
    services: List[Tuple[str, str, str]] = []

    while index < len(lines):
        raw = lines[index].strip()
        if raw == "transponders":
            state = "trans"
            index += 1
            continue
        if raw == "services":
            state = "services"
            index += 1
            continue
        if raw == "end":
            state = None
            index += 1
            continue

        if state == "trans" and raw and raw != "/":
            if index + 1 >= len(lines):
                break
            transponders.append((raw, lines[index + 1].strip()))
            index += 2
            continue

        if state == "services" and raw and SERVICE_REF_PATTERN.match(raw):
            # descriptor, name and flag line always come as a triple
            name_line = lines[index + 1] if index + 1 < len(lines) else ""
            flag_line = lines[index + 2].strip() if index + 2 < len(lines) else ""
            if flag_line == "end":
                flag_line = ""
                index += 2
            else:
                index += 3
            services.append((raw, name_line, flag_line))
            continue

        index += 1

    return transponders, services


def _split_lamedb5(lines: List[str], path: Path) -> Tuple[List[RawTransponder], List[Tuple[str, str, str]]]:
    transponders: List[RawTransponder] = []
    services: List[Tuple[str, str, str]] = []
    for line in lines[1:]:
        raw = line.strip()
        if raw.startswith("t:"):
            key, _, data = raw[2:].partition(",")
            # lamedb5 separates the delivery char with ":" instead of a space
            transponders.append((key, data.replace(":", " ", 1)))
        elif raw.startswith("s:"):
            match = LAMEDB5_SERVICE_PATTERN.match(raw)
            if not match:
                raise SettingsLoadError(f"invalid service line {raw!r} in {path}")
            services.append((match.group(1), match.group(2), match.group(3) or ""))
    return transponders, services


def _parse_transponder_entry(
    key_line: str, data_line: str, satellites: Dict[str, Satellite], path: Path
) -> Transponder:
    try:
        namespace_hex, tsid_hex, onid_hex = key_line.split(":")
        namespace = int(namespace_hex, 16)
        tsid = int(tsid_hex, 16)
        onid = int(onid_hex, 16)
    except ValueError as exc:
        raise SettingsLoadError(f"invalid transponder key {key_line!r} in {path}") from exc

    if not data_line:
        raise SettingsLoadError(f"empty transponder payload for {key_line} in {path}")

    delivery = DELIVERY_CHARS.get(data_line[0].lower())
    if delivery is None:
        raise SettingsLoadError(f"unknown delivery type {data_line[0]!r} for transponder {key_line} in {path}")
    payload = data_line[1:].strip()
    parts = payload.split(":")
    frequency = _safe_int(parts[0])

    satellite = None
    symbol_rate = polarization = fec = inversion = system = modulation = None
    if delivery == "sat":
        symbol_rate = _safe_int(_field(parts, 1))
        polarization = POLARISATIONS.get(_field(parts, 2), _field(parts, 2) or None)
        fec = SAT_FEC.get(_field(parts, 3), _field(parts, 3) or None)
        satellite = _resolve_satellite(_field(parts, 4), satellites)
        inversion = INVERSIONS.get(_field(parts, 5))
        system = SAT_SYSTEMS.get(_field(parts, 7), "DVB-S")
        modulation = _field(parts, 8) or None
    elif delivery == "cable":
        symbol_rate = _safe_int(_field(parts, 1))
        inversion = INVERSIONS.get(_field(parts, 2))
        modulation = _field(parts, 3) or None
        fec = _field(parts, 4) or None
        system = "DVB-C"
    else:
        inversion = INVERSIONS.get(_field(parts, 8))
        modulation = _field(parts, 4) or None
        system = "DVB-T2" if _field(parts, 10) == "1" else "DVB-T"

    return Transponder(
        frequency=frequency,
        namespace=namespace,
        transport_stream_id=tsid,
        network_id=onid,
        delivery=delivery,
        satellite=satellite,
        symbol_rate=symbol_rate,
        polarization=polarization,
        fec=fec,
        inversion=inversion,
        system=system,
        modulation=modulation,
        raw=f"{data_line[0].lower()} {payload}",
    )


def _resolve_satellite(value: str, satellites: Dict[str, Satellite]) -> Satellite:
    try:
        position = int(value)
    except ValueError:
        # keep the raw text so the scanner can report it
        return satellites.get(value, Satellite(name=f"Orbital position {value}", position=value))
    if position > 1800:
        position -= 3600
    key = str(position)
    satellite = satellites.get(key)
    if satellite is None:
        label = Satellite(name=key, position=key).position_label
        satellite = Satellite(name=label, position=key)
    return satellite


def _parse_service_entry(
    descriptor: str,
    name_line: str,
    flag_line: str,
    transponders: Dict[str, Transponder],
    path: Path,
) -> Optional[Service]:
    parts = descriptor.split(":")
    if len(parts) < 5:
        raise SettingsLoadError(f"invalid service descriptor {descriptor!r} in {path}")
    try:
        sid = int(parts[0], 16)
        namespace = int(parts[1], 16)
        tsid = int(parts[2], 16)
        onid = int(parts[3], 16)
        service_type = int(parts[4])
        prog_number = int(parts[5]) if len(parts) > 5 and parts[5] else 0
    except ValueError as exc:
        raise SettingsLoadError(f"invalid service descriptor {descriptor!r} in {path}") from exc

    trans_key = f"{namespace:08x}:{tsid:04x}:{onid:04x}"
    transponder = transponders.get(trans_key)
    if transponder is None:
        log.warning("service %s references unknown transponder %s, skipping", _clean_text(name_line), trans_key)
        return None

    return Service(
        service_id=make_service_id(sid, namespace, tsid, onid),
        name=_clean_text(name_line),
        service_type=service_type,
        transponder=transponder,
        flags=tuple(_parse_flags(flag_line)),
        prog_number=prog_number,
    )


def _parse_flags(flag_line: str) -> Iterable[ServiceFlag]:
    for chunk in flag_line.split(","):
        kind, sep, value = chunk.partition(":")
        value = _clean_text(value)
        if sep and kind and value:
            yield ServiceFlag(kind=kind.strip(), value=value)


def _parse_bouquets(base_path: Path) -> List[Bouquet]:
    bouquets: List[Bouquet] = []
    for bouquet_file in sorted(base_path.glob("bouquets.*")):
        for ref_name in _collect_referenced_bouquets(bouquet_file):
            path = base_path / ref_name
            if path.exists():
                bouquets.append(_parse_userbouquet(path))
            else:
                log.warning("referenced userbouquet %s not found in %s", ref_name, base_path)
    for ub_file in sorted(base_path.glob("userbouquet.*")):
        if not any(b.source_path == ub_file for b in bouquets):
            bouquets.append(_parse_userbouquet(ub_file))
    return bouquets


def _collect_referenced_bouquets(path: Path) -> List[str]:
    refs: List[str] = []
    seen: Set[str] = set()
    with path.open("r", encoding="utf-8", errors="replace") as fh:
        for line in fh:
            if "FROM BOUQUET" not in line:
                continue
            match = re.search(r'"([^"]+)"', line)
            if match and match.group(1) not in seen:
                seen.add(match.group(1))
                refs.append(match.group(1))
    return refs


def _parse_userbouquet(path: Path) -> Bouquet:
    items: List[BouquetItem] = []
    name = path.stem
    category = "radio" if path.suffix == ".radio" else "tv"
    with path.open("r", encoding="utf-8", errors="replace") as fh:
        for line in fh:
            line = line.strip()
            if line.startswith("#NAME"):
                name = _clean_text(line.split(" ", 1)[1]) if " " in line else name
            elif line.startswith("#SERVICE"):
                ref = line.split(" ", 1)[1].strip() if " " in line else ""
                items.append(classify_service_ref(ref))
            elif line.startswith("#DESCRIPTION") and items:
                items[-1].description = _clean_text(line.split(" ", 1)[1]) if " " in line else None
    return Bouquet(name=name, items=items, category=category, source_path=path)


def _is_printable(ch: str) -> bool:
    return ord(ch) >= 32 or ch in {"\t"}


def _clean_text(value: Optional[str]) -> str:
    if value is None:
        return ""
    text = value.replace("\x00", "")
    text = "".join(ch for ch in text if _is_printable(ch))
    text = unicodedata.normalize("NFC", text)
    return text.strip()


def _write_lamedb(settings: Settings, path: Path) -> None:
    lines: List[str] = ["eDVB services /4/", "transponders"]
    for trans in sorted(settings.transponders.values(), key=lambda t: (t.namespace, t.transport_stream_id)):
        lines.append(trans.key)
        lines.append(f"\t{trans.raw or _format_transponder_payload(trans)}")
        lines.append("/")
    lines.append("end")
    lines.append("services")
    for service in settings.services.values():
        trans = service.transponder
        sid = service.service_id.split(":", 1)[0]
        lines.append(f"{sid}:{trans.key}:{service.service_type}:{service.prog_number}")
        lines.append(service.name)
        lines.append(service.flags_text or "p:")
    lines.append("end")
    lines.append("Have a lot of bugs!")
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def _format_transponder_payload(trans: Transponder) -> str:
    delivery_char = {"sat": "s", "cable": "c", "terrestrial": "t"}[trans.delivery]
    if trans.delivery != "sat":
        return f"{delivery_char} {trans.frequency}:{trans.symbol_rate or 0}:2:0:0"
    pol_code = {value: key for key, value in POLARISATIONS.items()}.get(trans.polarization or "H", "0")
    position = trans.satellite.position if trans.satellite else "0"
    return f"s {trans.frequency}:{trans.symbol_rate or 0}:{pol_code}:0:{position}:2:0"


def _write_bouquet_files(settings: Settings, target_dir: Path) -> None:
    tv_files: List[str] = []
    radio_files: List[str] = []
    used_names: Set[str] = set()

    for bouquet in settings.bouquets:
        suffix = ".tv" if bouquet.category != "radio" else ".radio"
        if bouquet.source_path:
            filename = bouquet.source_path.name
        else:
            slug = _slugify(bouquet.name)
            filename = f"userbouquet.{slug}{suffix}"
            idx = 1
            while filename in used_names:
                filename = f"userbouquet.{slug}_{idx}{suffix}"
                idx += 1
        used_names.add(filename)
        lines = [f"#NAME {bouquet.name}"]
        for item in bouquet.items:
            lines.append(f"#SERVICE {item.service_ref}")
            if item.description:
                lines.append(f"#DESCRIPTION {item.description}")
        (target_dir / filename).write_text("\n".join(lines) + "\n", encoding="utf-8")
        if suffix == ".tv":
            tv_files.append(filename)
        else:
            radio_files.append(filename)

    _write_master_bouquet(target_dir / "bouquets.tv", "User - Bouquets (TV)", tv_files)
    _write_master_bouquet(target_dir / "bouquets.radio", "User - Bouquets (Radio)", radio_files)


def _write_master_bouquet(path: Path, title: str, filenames: List[str]) -> None:
    lines = [f"#NAME {title}"]
    for filename in filenames:
        lines.append(f'#SERVICE 1:7:1:0:0:0:0:0:0:0:FROM BOUQUET "{filename}" ORDER BY bouquet')
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def _slugify(value: str) -> str:
    value = value.strip().lower()
    value = re.sub(r"[^a-z0-9]+", "_", value)
    value = re.sub(r"_+", "_", value)
    return value.strip("_") or "bouquet"


def _field(parts: List[str], index: int) -> str:
    return parts[index].strip() if len(parts) > index else ""


def _safe_int(value: str) -> int:
    try:
        return int(value.strip())
    except ValueError:
        return 0

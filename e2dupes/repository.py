"""
In-memory settings repository.

Owns one ``Settings`` snapshot and is the only place where services are
deleted. Deleting a service also drops the bouquet items pointing at it.

Deutsch:
    Settings-Repository im Speicher; einzige Stelle, die Services löscht.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Iterable, List, Optional

from . import io_enigma
from .errors import UnknownServiceId
from .models import Bouquet, Service, Settings

log = logging.getLogger(__name__)


class SettingsRepository:
    def __init__(self, settings: Settings) -> None:
        # service ids are case-insensitive; keys are kept lowercase
        if any(key != key.lower() for key in settings.services):
            lowered = {key.lower(): service for key, service in settings.services.items()}
            settings.services.clear()
            settings.services.update(lowered)
        self._settings = settings
        # One pending operation per repository; taken by the session.
        self.operation_lock = threading.Lock()

    @classmethod
    def load(cls, path: Path) -> "SettingsRepository":
        return cls(io_enigma.load_settings(path))

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def services(self) -> List[Service]:
        return list(self._settings.services.values())

    @property
    def bouquets(self) -> List[Bouquet]:
        return list(self._settings.bouquets)

    @property
    def directory(self) -> Optional[Path]:
        return self._settings.directory

    def __len__(self) -> int:
        return len(self._settings.services)

    def get(self, service_id: str) -> Optional[Service]:
        return self._settings.services.get(service_id.lower())

    def remove_services(self, service_ids: Iterable[str]) -> int:
        """
        Remove services and every bouquet item referencing them.

        All ids are checked first; when one is unknown nothing is removed.
        """

        wanted = {service_id.lower() for service_id in service_ids}
        unknown = {service_id for service_id in wanted if service_id not in self._settings.services}
        if unknown:
            raise UnknownServiceId(unknown)

        for service_id in wanted:
            del self._settings.services[service_id]

        dropped_items = 0
        for bouquet in self._settings.bouquets:
            kept = [
                item
                for item in bouquet.items
                if not (item.is_service and item.service_id and item.service_id.lower() in wanted)
            ]
            dropped_items += len(bouquet.items) - len(kept)
            bouquet.items = kept

        log.info("removed %d services and %d bouquet entries", len(wanted), dropped_items)
        return len(wanted)

    def save(self, target_dir: Path) -> Path:
        return io_enigma.write_settings(self._settings, target_dir)

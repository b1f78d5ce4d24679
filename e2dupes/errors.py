"""Exception hierarchy for e2dupes.

An aborted scan raises a ``ScanError``, an aborted removal a ``RemovalError``.
"""

from __future__ import annotations

from typing import Iterable


class DuplicatesError(Exception):
    """Base exception for all e2dupes failures."""


class ConfigError(DuplicatesError):
    """Raised for an invalid configuration file."""


class SettingsLoadError(DuplicatesError):
    """Raised when an Enigma2 settings folder cannot be read."""


class OperationInProgress(DuplicatesError):
    """Raised when an operation is started while another one is still running."""


class ScanError(DuplicatesError):
    """Raised when a duplicate scan fails as a whole."""


class MalformedSatellitePosition(ScanError):
    def __init__(self, satellite_name: str, position: str) -> None:
        super().__init__(f"satellite {satellite_name!r} has malformed orbital position {position!r}")
        self.satellite_name = satellite_name
        self.position = position


class BouquetMatchError(ScanError):
    """Raised when duplicates cannot be matched with bouquets."""


class ScanCancelled(ScanError):
    """Raised when a running scan was cancelled before delivering its result."""


class RemovalError(DuplicatesError):
    """Raised when a removal aborts."""


class UnknownServiceId(RemovalError):
    def __init__(self, service_ids: Iterable[str]) -> None:
        self.service_ids = sorted(service_ids)
        preview = ", ".join(self.service_ids[:5])
        if len(self.service_ids) > 5:
            preview += f", ... ({len(self.service_ids)} total)"
        super().__init__(f"unknown service ids: {preview}")

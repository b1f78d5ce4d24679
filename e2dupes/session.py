"""
Background orchestration of load, scan, match and removal.

A ``DuplicateSession`` is the explicit context object a caller (CLI, GUI,
tests) works with. Every operation runs on a single worker thread and is
delivered through a ``concurrent.futures.Future``. Only one operation may be
in flight at a time; starting another one while busy raises
``OperationInProgress`` instead of queueing it.

Deutsch:
    Hintergrund-Ablauf von Laden, Suchen, Abgleich und Löschen.
"""

from __future__ import annotations

import concurrent.futures
import enum
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple, TypeVar

from .config import AppConfig
from .errors import (
    DuplicatesError,
    OperationInProgress,
    ScanCancelled,
    ScanError,
    SettingsLoadError,
)
from .matcher import match_bouquets
from .models import ScanResult
from .planner import (
    RemovalPlan,
    execute_plan,
    plan_selected_removal,
    plan_unbouqueted_removal,
    select_unbouqueted_duplicates,
)
from .repository import SettingsRepository
from .scanner import scan_duplicates

log = logging.getLogger(__name__)

T = TypeVar("T")


class SessionState(str, enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    SCANNING = "scanning"
    MATCHED = "matched"
    REMOVING = "removing"
    SAVING = "saving"
    FAILED = "failed"


BUSY_STATES = frozenset({SessionState.LOADING, SessionState.SCANNING, SessionState.REMOVING, SessionState.SAVING})

Listener = Callable[[SessionState, "DuplicateSession"], None]


@dataclass
class RemovalResult:
    removed: int
    scan: Optional[ScanResult]


class DuplicateSession:
    def __init__(
        self,
        repository: Optional[SettingsRepository] = None,
        config: Optional[AppConfig] = None,
        executor: Optional[concurrent.futures.Executor] = None,
    ) -> None:
        self.config = config or AppConfig()
        self._repository = repository
        self._owns_executor = executor is None
        self._executor = executor or concurrent.futures.ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="e2dupes-session"
        )
        self._lock = threading.Lock()
        self._cancel_event = threading.Event()
        self._listeners: List[Listener] = []
        self._state = SessionState.IDLE
        self._result: Optional[ScanResult] = None
        self._error: Optional[BaseException] = None

    # -- read access -------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._state in BUSY_STATES

    @property
    def result(self) -> Optional[ScanResult]:
        return self._result

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    @property
    def repository(self) -> Optional[SettingsRepository]:
        return self._repository

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    # -- operations --------------------------------------------------------

    def load(self, path: Path) -> "concurrent.futures.Future[ScanResult]":
        """Load an Enigma2 settings folder, then scan it."""

        return self._submit(SessionState.LOADING, lambda: self._load_job(Path(path)), needs_repository=False)

    def scan(self) -> "concurrent.futures.Future[ScanResult]":
        return self._submit(SessionState.SCANNING, self._scan_job)

    def remove_selected(self, service_ids: Iterable[str]) -> "concurrent.futures.Future[RemovalResult]":
        plan = plan_selected_removal(service_ids)
        return self._submit(SessionState.REMOVING, lambda: self._remove_job(lambda: plan))

    def remove_unbouqueted(self, confirmed: bool) -> "concurrent.futures.Future[RemovalResult]":
        """
        Remove every service that is in no bouquet, duplicates or not.

        Nothing happens unless ``confirmed`` is true.
        """

        if not confirmed:
            self._ensure_idle()
            log.info("removal of services not in bouquets was not confirmed, skipping")
            return _completed(RemovalResult(removed=0, scan=self._result))
        return self._submit(SessionState.REMOVING, lambda: self._remove_job(self._plan_unbouqueted))

    def remove_unbouqueted_duplicates(self) -> "concurrent.futures.Future[RemovalResult]":
        """Remove the duplicates of the latest scan that are in no bouquet."""

        if self._result is None:
            raise DuplicatesError("no scan result available, run a scan first")
        plan = plan_selected_removal(select_unbouqueted_duplicates(self._result))
        return self._submit(SessionState.REMOVING, lambda: self._remove_job(lambda: plan))

    def save(self, target_dir: Path) -> "concurrent.futures.Future[Path]":
        return self._submit(SessionState.SAVING, lambda: self._save_job(Path(target_dir)))

    def cancel(self) -> bool:
        """
        Ask the running operation to stop at its next step boundary.

        Returns False when nothing is running.
        """

        if not self.busy:
            return False
        log.info("cancellation requested while %s", self._state.value)
        self._cancel_event.set()
        return True

    def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=True)

    def __enter__(self) -> "DuplicateSession":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -- jobs --------------------------------------------------------------

    def _load_job(self, path: Path) -> Tuple[SessionState, ScanResult]:
        log.info("loading settings from %s", path)
        try:
            repository = SettingsRepository.load(path)
        except (OSError, UnicodeError) as exc:
            raise SettingsLoadError(f"failed to read settings from {path}: {exc}") from exc
        self._repository = repository
        result = self._scan_pipeline()
        return SessionState.MATCHED, result

    def _scan_job(self) -> Tuple[SessionState, ScanResult]:
        return SessionState.MATCHED, self._scan_pipeline()

    def _remove_job(self, plan_factory: Callable[[], RemovalPlan]) -> Tuple[SessionState, RemovalResult]:
        repository = self._require_repository()
        self._check_cancelled()
        plan = plan_factory()
        removed = execute_plan(repository, plan)
        if removed == 0:
            return self._resting_state(), RemovalResult(removed=0, scan=self._result)
        # services are gone at this point; a cancel only skips the rescan
        try:
            result = self._scan_pipeline()
        except ScanCancelled:
            log.info("rescan after removing %d services was cancelled", removed)
            return SessionState.IDLE, RemovalResult(removed=removed, scan=None)
        return SessionState.MATCHED, RemovalResult(removed=removed, scan=result)

    def _save_job(self, target_dir: Path) -> Tuple[SessionState, Path]:
        path = self._require_repository().save(target_dir)
        return self._resting_state(), path

    def _plan_unbouqueted(self) -> RemovalPlan:
        repository = self._require_repository()
        return plan_unbouqueted_removal(repository.services, repository.bouquets)

    def _scan_pipeline(self) -> ScanResult:
        repository = self._require_repository()
        self._transition(SessionState.SCANNING)
        self._check_cancelled()
        try:
            result = scan_duplicates(
                repository.services,
                cable_label=self.config.cable_label,
                terrestrial_label=self.config.terrestrial_label,
            )
            self._check_cancelled()
            match_bouquets(list(result.iter_services()), repository.bouquets)
        except DuplicatesError:
            raise
        except Exception as exc:
            raise ScanError(f"error occurred while looking for duplicates: {exc}") from exc
        self._check_cancelled()
        return result

    # -- plumbing ----------------------------------------------------------

    def _submit(
        self,
        state: SessionState,
        job: Callable[[], Tuple[SessionState, T]],
        needs_repository: bool = True,
    ) -> "concurrent.futures.Future[T]":
        with self._lock:
            if self.busy:
                raise OperationInProgress(f"cannot start {state.value}: session is {self._state.value}")
            if needs_repository and self._repository is None:
                raise DuplicatesError("no settings loaded")
            repo_lock = self._repository.operation_lock if self._repository is not None else None
            if repo_lock is not None and not repo_lock.acquire(blocking=False):
                raise OperationInProgress("settings repository is busy with another operation")
            self._cancel_event.clear()
            self._error = None
            self._state = state
        self._notify(state)
        log.debug("submitting %s", state.value)
        try:
            return self._executor.submit(self._run, job, repo_lock)
        except RuntimeError:
            # executor already shut down
            _release(repo_lock)
            self._finish(self._resting_state(), result=self._result)
            raise

    def _run(self, job: Callable[[], Tuple[SessionState, T]], repo_lock: Optional[threading.Lock]) -> T:
        try:
            final_state, value = job()
        except ScanCancelled:
            _release(repo_lock)
            log.info("operation cancelled")
            self._finish(SessionState.IDLE, result=None)
            raise
        except Exception as exc:
            _release(repo_lock)
            log.error("operation failed: %s", exc)
            self._finish(SessionState.FAILED, result=None, error=exc)
            raise
        _release(repo_lock)
        if isinstance(value, RemovalResult):
            self._finish(final_state, result=value.scan)
        elif isinstance(value, ScanResult):
            self._finish(final_state, result=value)
        else:
            self._finish(final_state, result=self._result)
        return value

    def _finish(
        self,
        state: SessionState,
        result: Optional[ScanResult],
        error: Optional[BaseException] = None,
    ) -> None:
        with self._lock:
            self._result = result
            self._error = error
            self._state = state
        self._notify(state)

    def _transition(self, state: SessionState) -> None:
        with self._lock:
            self._state = state
        self._notify(state)

    def _notify(self, state: SessionState) -> None:
        log.debug("session state -> %s", state.value)
        for listener in list(self._listeners):
            try:
                listener(state, self)
            except Exception:
                log.exception("session listener %r failed", listener)

    def _check_cancelled(self) -> None:
        if self._cancel_event.is_set():
            raise ScanCancelled("scan was cancelled")

    def _ensure_idle(self) -> None:
        if self.busy:
            raise OperationInProgress(f"session is {self._state.value}")

    def _require_repository(self) -> SettingsRepository:
        if self._repository is None:
            raise DuplicatesError("no settings loaded")
        return self._repository

    def _resting_state(self) -> SessionState:
        return SessionState.MATCHED if self._result is not None else SessionState.IDLE


def _release(lock: Optional[threading.Lock]) -> None:
    if lock is not None:
        lock.release()


def _completed(value: T) -> "concurrent.futures.Future[T]":
    future: "concurrent.futures.Future[T]" = concurrent.futures.Future()
    future.set_result(value)
    return future

"""Lazy, single-flight device session management.

Every device-facing call goes through :meth:`SessionGuard.ensure_session`.
When no session is live, exactly one detection runs; callers arriving
while it is in flight wait for and share its outcome.

Usage:
    guard = SessionGuard(detect_device)
    session = guard.ensure_session()
    ...
    guard.clear("device vanished")  # next call re-detects
"""

from __future__ import annotations

import threading
from concurrent.futures import Future
from typing import Callable, Optional

from mtp_explorer.domain.models import DeviceSession
from mtp_explorer.logging import LoggerFactory

log = LoggerFactory.for_session()

Detector = Callable[[], DeviceSession]


class SessionGuard:
    def __init__(self, detector: Detector):
        self._detector = detector
        self._lock = threading.Lock()
        self._session: Optional[DeviceSession] = None
        self._inflight: Optional[Future] = None
        self.detections = 0

    @property
    def session(self) -> Optional[DeviceSession]:
        with self._lock:
            return self._session

    @property
    def is_live(self) -> bool:
        return self.session is not None

    def ensure_session(self) -> DeviceSession:
        """Return the live session, detecting the device if needed.

        Raises whatever the detector raised; the session stays absent.
        """
        with self._lock:
            if self._session is not None:
                return self._session
            if self._inflight is None:
                self._inflight = Future()
                owner = True
            else:
                owner = False
            inflight = self._inflight

        if owner:
            self._detect(inflight)
        return inflight.result()

    def init(self) -> DeviceSession:
        """Drop any live session and detect again."""
        self.clear("explicit init")
        return self.ensure_session()

    def _detect(self, inflight: Future) -> None:
        log.debug("Detecting MTP device")
        self.detections += 1
        try:
            session = self._detector()
        except BaseException as e:
            log.warning(f"Device detection failed: {e}")
            with self._lock:
                self._inflight = None
            inflight.set_exception(e)
            return
        log.info(f"MTP device session established: {session.description or '-'}")
        with self._lock:
            self._session = session
            self._inflight = None
        inflight.set_result(session)

    def clear(self, reason: str = "") -> None:
        with self._lock:
            if self._session is None:
                return
            self._session = None
        log.info(f"MTP device session cleared{': ' + reason if reason else ''}")

    def update(self, session: DeviceSession) -> None:
        """Replace the live session (e.g. after selecting a storage)."""
        with self._lock:
            self._session = session

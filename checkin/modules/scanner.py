"""
Scanner Flow Module - Event Check-in

The scanner state machine. A ScannerFlow owns the cooldown state of one
scanning station and lets a single decoded payload be processed at a time:

    IDLE --start()--> ACTIVE --decoded payload--> PROCESSING
    PROCESSING --outcome applied--> ACTIVE (decoding paused for the resume delay)
    ACTIVE --stop()--> IDLE (camera released)

Success and error outcomes are additionally exposed as a transient display
state for a couple of seconds. Decodes arriving while the flow is idle,
processing, or paused are discarded.
"""

import logging
import threading
import time
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Optional

from checkin.modules.attendance_manager import (
    STATUS_BUSY,
    STATUS_ERROR,
    STATUS_IGNORED,
    STATUS_INVALID_CODE,
    STATUS_RECENT_SCAN,
    ScanCooldownState,
    ScanOutcome,
)

DISPLAY_ERROR_STATUSES = (STATUS_RECENT_SCAN, STATUS_INVALID_CODE, STATUS_ERROR)


class ScannerState(str, Enum):
    IDLE = 'idle'
    ACTIVE = 'active'
    PROCESSING = 'processing'
    SUCCESS = 'success'
    ERROR = 'error'


class ScannerFlow:
    """
    One scanning station: state machine, cooldown state and optional camera.
    """

    def __init__(self, attendance_manager, camera=None,
                 resume_delay_seconds: float = 1.0,
                 display_seconds: float = 2.0,
                 clock: Callable[[], float] = time.time,
                 on_outcome: Optional[Callable[[ScanOutcome], None]] = None):
        """
        Args:
            attendance_manager: AttendanceManager used to validate and record scans
            camera: Optional CameraScanner feeding decoded payloads
            resume_delay_seconds (float): Pause after each outcome before decoding resumes
            display_seconds (float): How long a success/error display state lasts
            clock: Returns the current time in epoch seconds
            on_outcome: Called with every outcome that went through processing
        """
        self.manager = attendance_manager
        self.camera = camera
        self.resume_delay_seconds = resume_delay_seconds
        self.display_seconds = display_seconds
        self.clock = clock
        self.on_outcome = on_outcome
        self.logger = logging.getLogger(__name__)

        self.cooldown = ScanCooldownState()
        self.last_outcome: Optional[ScanOutcome] = None
        self.camera_error: Optional[str] = None

        self._state = ScannerState.IDLE
        self._resume_at = 0.0
        self._display_state: Optional[ScannerState] = None
        self._display_until = 0.0
        self._lock = threading.Lock()
        self.last_activity_at = self.clock()

    @classmethod
    def from_config(cls, attendance_manager, config, camera=None, **kwargs) -> 'ScannerFlow':
        return cls(
            attendance_manager,
            camera=camera,
            resume_delay_seconds=float(config.get('SCAN_RESUME_DELAY_SECONDS', 1.0)),
            display_seconds=float(config.get('SCAN_SUCCESS_DISPLAY_SECONDS', 2.0)),
            **kwargs
        )

    @property
    def state(self) -> ScannerState:
        return self._state

    def start(self) -> bool:
        """Activate scanning. Returns False if the camera could not be started."""
        with self._lock:
            if self._state != ScannerState.IDLE:
                return True
            self.camera_error = None
            self._resume_at = 0.0
            self._state = ScannerState.ACTIVE
            self.last_activity_at = self.clock()

        if self.camera is not None:
            if not self.camera.start(self.handle_decoded, on_error=self._on_camera_error):
                with self._lock:
                    self._state = ScannerState.IDLE
                return False

        self.logger.info("Scanner started")
        return True

    def stop(self) -> None:
        """Deactivate scanning and release the camera."""
        with self._lock:
            was_running = self._state != ScannerState.IDLE
            self._state = ScannerState.IDLE
            self._display_state = None

        if self.camera is not None:
            self.camera.stop()

        if was_running:
            self.logger.info("Scanner stopped")

    def handle_decoded(self, payload, now: Optional[float] = None) -> ScanOutcome:
        """
        Process a decoded payload if the flow is ready for one.

        Returns:
            ScanOutcome: The processing outcome, or an ignored/busy outcome when
            the payload was discarded
        """
        now = self.clock() if now is None else now

        with self._lock:
            if self._state == ScannerState.IDLE:
                return ScanOutcome(STATUS_IGNORED, 'Scanner Stopped', 'Start the camera to scan QR codes.')
            if self._state == ScannerState.PROCESSING or now < self._resume_at:
                return ScanOutcome(STATUS_BUSY, 'Processing', 'Another scan is being processed.', silent=True)
            self._state = ScannerState.PROCESSING
            self.last_activity_at = now

        outcome = None
        try:
            outcome = self.manager.process_scan(payload, self.cooldown, now=now)
        finally:
            with self._lock:
                if self._state == ScannerState.PROCESSING:
                    self._state = ScannerState.ACTIVE
                self._resume_at = now + self.resume_delay_seconds
                if outcome is not None:
                    self._apply_display(outcome, now)

        self.last_outcome = outcome
        if self.on_outcome is not None:
            self.on_outcome(outcome)
        return outcome

    def status(self, now: Optional[float] = None) -> Dict[str, Any]:
        """Snapshot of the flow for display."""
        now = self.clock() if now is None else now
        with self._lock:
            display = self._display_state if now < self._display_until else None
            state = self._state
            paused = state == ScannerState.ACTIVE and now < self._resume_at

        return {
            'state': state.value,
            'display': display.value if display else None,
            'paused': paused,
            'camera_error': self.camera_error,
            'last_outcome': self.last_outcome.to_dict() if self.last_outcome else None,
        }

    def _apply_display(self, outcome: ScanOutcome, now: float) -> None:
        if outcome.success:
            self._display_state = ScannerState.SUCCESS
        elif outcome.status in DISPLAY_ERROR_STATUSES:
            self._display_state = ScannerState.ERROR
        else:
            return
        self._display_until = now + self.display_seconds

    def _on_camera_error(self, message: str) -> None:
        self.logger.error(f"Camera error: {message}")
        self.camera_error = message
        with self._lock:
            self._state = ScannerState.IDLE

    def __enter__(self) -> 'ScannerFlow':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()


def idle_status() -> Dict[str, Any]:
    """Status reported for a station that has no flow."""
    return {
        'state': ScannerState.IDLE.value,
        'display': None,
        'paused': False,
        'camera_error': None,
        'last_outcome': None,
    }


class ScannerRegistry:
    """
    Scanner flows keyed by station id, created on first use.

    Station ids come from clients, so the registry is bounded: when
    ``stations`` is given only those ids are accepted, and at most
    ``max_flows`` flows are held. Idle or stale flows are evicted to make
    room for a new station.
    """

    def __init__(self, flow_factory: Callable[[], ScannerFlow],
                 stations: Optional[Iterable[str]] = None,
                 max_flows: int = 20,
                 stale_seconds: float = 3600.0):
        self._flow_factory = flow_factory
        self.stations = frozenset(stations or ())
        self.max_flows = max_flows
        self.stale_seconds = stale_seconds
        self._flows: Dict[str, ScannerFlow] = {}
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_config(cls, flow_factory, config) -> 'ScannerRegistry':
        return cls(
            flow_factory,
            stations=config.get('SCANNER_STATIONS') or None,
            max_flows=int(config.get('SCANNER_MAX_STATIONS', 20)),
            stale_seconds=float(config.get('SCANNER_STALE_SECONDS', 3600.0)),
        )

    def is_allowed(self, station_id: str) -> bool:
        return not self.stations or station_id in self.stations

    def find(self, station_id: str) -> Optional[ScannerFlow]:
        """Look a station up without creating it."""
        with self._lock:
            return self._flows.get(station_id)

    def get(self, station_id: str) -> Optional[ScannerFlow]:
        """
        Return the station's flow, creating it when needed.

        Returns:
            Optional[ScannerFlow]: None if the station is not accepted or the
            registry is full of active flows
        """
        if not self.is_allowed(station_id):
            return None

        with self._lock:
            flow = self._flows.get(station_id)
            if flow is None:
                if len(self._flows) >= self.max_flows:
                    self._evict_inactive()
                if len(self._flows) >= self.max_flows:
                    self.logger.warning(f"Scanner station limit reached, refusing '{station_id}'")
                    return None
                flow = self._flow_factory()
                self._flows[station_id] = flow
            return flow

    def stop_all(self) -> None:
        with self._lock:
            flows = list(self._flows.values())
        for flow in flows:
            flow.stop()

    def __len__(self) -> int:
        with self._lock:
            return len(self._flows)

    def _evict_inactive(self) -> None:
        for station_id, flow in list(self._flows.items()):
            stale = flow.clock() - flow.last_activity_at > self.stale_seconds
            if flow.state == ScannerState.IDLE or stale:
                flow.stop()
                del self._flows[station_id]
                self.logger.info(f"Scanner station '{station_id}' evicted")

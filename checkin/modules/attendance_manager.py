"""
Attendance Manager Module - Event Check-in

This module turns a decoded QR payload into an attendance event. It owns the
validation and de-duplication rules applied to every scan:

1. A global debounce window after the last accepted scan drops repeated
   frames of the same code without any message.
2. A per-participant cooldown rejects a participant that was recorded a
   moment ago, with a "recently scanned" warning.
3. Unknown identifiers are reported as invalid codes and nothing is written.
4. Known participants are checked in, or in toggle mode checked out when
   they already have an open attendance record.

The cooldown timestamps live in a ScanCooldownState owned by the caller
(one per scanner) and are passed in by reference.
"""

from datetime import datetime, timezone
import logging
import time
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from checkin.modules.errors import StoreError
from checkin.modules.participant_store import (
    ACTION_CHECK_IN,
    AttendanceRecord,
    Participant,
)

MODE_TOGGLE = 'toggle'
MODE_CHECKIN = 'checkin'

STATUS_IGNORED = 'ignored'
STATUS_BUSY = 'busy'
STATUS_RECENT_SCAN = 'recent_scan'
STATUS_INVALID_CODE = 'invalid_code'
STATUS_CHECKED_IN = 'checked_in'
STATUS_CHECKED_OUT = 'checked_out'
STATUS_ERROR = 'error'

SUCCESS_STATUSES = (STATUS_CHECKED_IN, STATUS_CHECKED_OUT)


def normalize_payload(raw: Union[bytes, str, None]) -> str:
    if not raw:
        return ""

    if isinstance(raw, str):
        decoded = raw
    else:
        try:
            decoded = raw.decode("utf-8")
        except UnicodeDecodeError:
            decoded = raw.decode("utf-8", errors="ignore")

    return unicodedata.normalize("NFC", decoded).strip()


@dataclass
class ScanCooldownState:
    """Cooldown timestamps for one scanner, in epoch seconds."""
    last_scan_at: Optional[float] = None
    participant_scans: Dict[str, float] = field(default_factory=dict)


@dataclass
class ScanOutcome:
    """Result of processing one decoded payload."""
    status: str
    title: str
    message: str
    payload: str = ''
    participant: Optional[Participant] = None
    record: Optional[AttendanceRecord] = None
    # Not worth showing to the operator (debounced repeats, busy scanner)
    silent: bool = False

    @property
    def success(self) -> bool:
        return self.status in SUCCESS_STATUSES

    @property
    def severity(self) -> str:
        if self.success:
            return 'success'
        if self.status in (STATUS_IGNORED, STATUS_BUSY):
            return 'info'
        return 'error'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status,
            'success': self.success,
            'severity': self.severity,
            'title': self.title,
            'message': self.message,
            'participant': self.participant.to_dict() if self.participant else None,
            'record': self.record.to_dict() if self.record else None,
            'silent': self.silent,
        }


class AttendanceManager:
    """
    Validates decoded QR payloads and records attendance.
    """

    def __init__(self, participant_store, mode: str = MODE_TOGGLE,
                 debounce_seconds: float = 1.0,
                 participant_cooldown_seconds: float = 30.0):
        """
        Initialize the attendance manager.

        Args:
            participant_store: ParticipantStore instance
            mode (str): 'toggle' (check-in/check-out) or 'checkin' (check-in only)
            debounce_seconds (float): Global window after an accepted scan
            participant_cooldown_seconds (float): Per-participant window after a recorded scan
        """
        if mode not in (MODE_TOGGLE, MODE_CHECKIN):
            raise ValueError(f"Unknown attendance mode: {mode}")

        self.store = participant_store
        self.mode = mode
        self.debounce_seconds = debounce_seconds
        self.participant_cooldown_seconds = participant_cooldown_seconds
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_config(cls, participant_store, config) -> 'AttendanceManager':
        return cls(
            participant_store,
            mode=config.get('ATTENDANCE_MODE', MODE_TOGGLE),
            debounce_seconds=float(config.get('SCAN_DEBOUNCE_SECONDS', 1.0)),
            participant_cooldown_seconds=float(config.get('PARTICIPANT_SCAN_COOLDOWN_SECONDS', 30.0)),
        )

    def process_scan(self, raw_payload: Union[bytes, str, None], state: ScanCooldownState,
                     now: Optional[float] = None) -> ScanOutcome:
        """
        Process a decoded QR payload.

        Args:
            raw_payload: Decoded QR text (or bytes)
            state (ScanCooldownState): Cooldown state of the scanner, updated in place
            now (float): Scan time in epoch seconds; defaults to the current time

        Returns:
            ScanOutcome: What happened, with a user-facing title and message
        """
        now = time.time() if now is None else now
        payload = normalize_payload(raw_payload)

        if not payload:
            return ScanOutcome(STATUS_IGNORED, 'Empty Code', 'The QR code did not contain any data.')

        if state.last_scan_at is not None and now - state.last_scan_at < self.debounce_seconds:
            return ScanOutcome(STATUS_IGNORED, 'Ignored', 'Scan ignored, too soon after the previous one.',
                               payload=payload, silent=True)

        last_participant_scan = state.participant_scans.get(payload)
        if last_participant_scan is not None and now - last_participant_scan < self.participant_cooldown_seconds:
            self.logger.info(f"Recent scan rejected for {payload}")
            return ScanOutcome(
                STATUS_RECENT_SCAN,
                'Recent Scan',
                f"This participant was already scanned recently. "
                f"Please wait {self.participant_cooldown_seconds:g} seconds.",
                payload=payload
            )

        try:
            participant = self.store.get_participant(payload)
        except StoreError as e:
            self.logger.error(f"Participant lookup failed for {payload}: {str(e)}")
            return self._error_outcome(payload)

        if participant is None:
            self.logger.info(f"Invalid QR code scanned: {payload!r}")
            state.last_scan_at = now
            return ScanOutcome(STATUS_INVALID_CODE, 'Invalid QR Code',
                               'This QR code is not valid for this event.', payload=payload)

        scanned_at = datetime.fromtimestamp(now, tz=timezone.utc)
        try:
            if self.mode == MODE_TOGGLE:
                action, record = self.store.toggle_attendance(participant.id, at=scanned_at)
            else:
                action, record = ACTION_CHECK_IN, self.store.record_check_in(participant.id, at=scanned_at)
        except StoreError as e:
            self.logger.error(f"Attendance write failed for {participant.id}: {str(e)}")
            return self._error_outcome(payload)

        state.last_scan_at = now
        state.participant_scans[payload] = now

        if action == ACTION_CHECK_IN:
            self.logger.info(f"Checked in: {participant.full_name} ({participant.id})")
            return ScanOutcome(STATUS_CHECKED_IN, 'Check-in Successful!',
                               f"{participant.full_name} has been checked in.",
                               payload=payload, participant=participant, record=record)

        self.logger.info(f"Checked out: {participant.full_name} ({participant.id})")
        return ScanOutcome(STATUS_CHECKED_OUT, 'Check-out Successful!',
                           f"{participant.full_name} has been checked out.",
                           payload=payload, participant=participant, record=record)

    @staticmethod
    def _error_outcome(payload: str) -> ScanOutcome:
        return ScanOutcome(STATUS_ERROR, 'Error',
                           'An error occurred while processing the scan. Please try again.',
                           payload=payload)

"""
Camera Scanner Module - Event Check-in

Background camera capture for a scanning station. Frames are read with
OpenCV and decoded with zxing-cpp; every decoded QR payload is handed to a
callback, normally ScannerFlow.handle_decoded.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import suppress
from typing import Any, Callable, Optional

from checkin.modules.attendance_manager import normalize_payload

SCAN_INTERVAL_SECONDS = 0.08
DEDUP_INTERVAL_SECONDS = 0.8
JOIN_TIMEOUT_SECONDS = 1.5


class CameraScanner:
    def __init__(self, camera_index: int = 0) -> None:
        self._camera_index = camera_index
        self._running = False
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def start(
        self,
        on_payload: Callable[[str], Any],
        *,
        on_error: Optional[Callable[[str], None]] = None,
    ) -> bool:
        """Start the background capture loop."""

        with self._lock:
            if self._running:
                return True

            try:
                import cv2  # type: ignore[import-not-found]
                import zxingcpp  # type: ignore[import-not-found]
            except ImportError:
                if on_error:
                    on_error(
                        "Missing QR scanner dependencies. Install OpenCV (cv2) and zxing-cpp to enable scanning."
                    )
                return False

            # One event per run; a loop still draining after stop() only sees its own
            stop_event = threading.Event()
            self._stop_event = stop_event

            def _runner() -> None:
                self._run_loop(on_payload, on_error, cv2, zxingcpp, stop_event)

            self._thread = threading.Thread(target=_runner, name="camera-scanner", daemon=True)
            self._running = True
            self._thread.start()
            return True

    def stop(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._running = False
            self._stop_event.set()

        thread = self._thread
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=JOIN_TIMEOUT_SECONDS)
        self._thread = None

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _run_loop(
        self,
        on_payload: Callable[[str], Any],
        on_error: Optional[Callable[[str], None]],
        cv2_module,
        zxing_module,
        stop_event: threading.Event,
    ) -> None:
        capture = None
        last_payload: Optional[str] = None
        last_timestamp: float = 0.0

        try:
            capture = self._open_capture(cv2_module, on_error)
            if capture is None:
                return

            while not stop_event.is_set():
                ok, frame = capture.read()
                if not ok:
                    time.sleep(SCAN_INTERVAL_SECONDS)
                    continue

                now = time.time()

                try:
                    decoded = zxing_module.read_barcodes(
                        frame,
                        formats=zxing_module.BarcodeFormat.QRCode,
                        try_rotate=True,
                        try_downscale=True,
                    )
                except (RuntimeError, ValueError) as e:
                    self.logger.debug(f"QR decode attempt failed: {e}")
                    decoded = []

                for obj in decoded:
                    if hasattr(obj, "valid") and not obj.valid:
                        continue

                    payload = normalize_payload(getattr(obj, "text", ""))
                    if not payload:
                        payload = normalize_payload(bytes(getattr(obj, "bytes", b"") or b""))
                    if not payload:
                        continue

                    # Same code still in front of the camera
                    if last_payload == payload and (now - last_timestamp) < DEDUP_INTERVAL_SECONDS:
                        continue

                    last_payload = payload
                    last_timestamp = now
                    on_payload(payload)

                time.sleep(SCAN_INTERVAL_SECONDS)
        except Exception as e:
            self.logger.exception("Camera scanner loop stopped")
            if on_error:
                on_error(f"Camera scanner stopped: {e}")
        finally:
            if capture is not None:
                with suppress(Exception):
                    capture.release()
            with self._lock:
                if self._stop_event is stop_event:
                    self._running = False

    def _open_capture(self, cv2_module, on_error: Optional[Callable[[str], None]]):
        backend_preferences = [getattr(cv2_module, "CAP_DSHOW", None), getattr(cv2_module, "CAP_ANY", None)]

        for backend in backend_preferences:
            if backend is None:
                capture = cv2_module.VideoCapture(self._camera_index)
            else:
                capture = cv2_module.VideoCapture(self._camera_index, backend)

            if capture.isOpened():
                return capture

            capture.release()

        if on_error:
            on_error("Unable to access the camera. Check that it is connected and not used by another app.")

        return None

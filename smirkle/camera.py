"""
Frame sampler: owns the webcam stream for one game session.
"""
from __future__ import annotations
import asyncio
import logging
from typing import Callable, Optional

import cv2
import numpy as np

from smirkle.config import Settings

logger = logging.getLogger(__name__)

# Consecutive failed reads before the device is considered gone
MAX_READ_FAILURES = 5


class AcquisitionError(Exception):
    """Camera could not be acquired or was lost."""
    user_message = "Camera error. Please check your camera and try again."


class CameraPermissionError(AcquisitionError):
    user_message = "Camera access denied. Please allow camera access to play."


class CameraNotFoundError(AcquisitionError):
    user_message = "No camera found. Please connect a camera to play."


class CameraDisconnectedError(AcquisitionError):
    user_message = "Camera disconnected. Reconnect your camera and start again."


def user_message(error: BaseException) -> str:
    """Actionable text for the UI; never exposes driver internals."""
    if isinstance(error, AcquisitionError):
        return error.user_message
    return AcquisitionError.user_message


class FrameSampler:
    """
    Wraps a cv2.VideoCapture with an idempotent lifecycle.

    - acquire(): open the configured camera (video only)
    - suspend()/resume(): keep the device open but stop handing out frames
    - release(): close the device; safe to call any number of times
    """
    def __init__(self, settings: Settings,
                 capture_factory: Callable[[int], object] | None = None):
        self.s = settings
        self._factory = capture_factory or cv2.VideoCapture
        self._cap = None
        self._suspended = False
        self._read_failures = 0

    @property
    def active(self) -> bool:
        return self._cap is not None

    @property
    def suspended(self) -> bool:
        return self._suspended

    async def acquire(self) -> "FrameSampler":
        if self._cap is not None:
            logger.debug("[camera] acquire ignored; stream already held")
            return self
        cam_idx = self.s.CAMERA_INDEX
        logger.debug(f"[camera] opening camera index {cam_idx}")
        try:
            cap = await asyncio.to_thread(self._open, cam_idx)
        except PermissionError as e:
            logger.warning(f"[camera] permission denied for camera {cam_idx}: {e}")
            raise CameraPermissionError(str(e)) from e
        except AcquisitionError:
            raise
        except Exception as e:
            logger.exception(f"[camera] failed to open camera {cam_idx}")
            raise AcquisitionError(str(e)) from e

        self._cap = cap
        self._suspended = False
        self._read_failures = 0
        logger.info(f"[camera] acquired camera {cam_idx}")
        return self

    def _open(self, cam_idx: int):
        cap = self._factory(cam_idx)
        if not cap.isOpened():
            try:
                cap.release()
            except Exception:
                logger.debug("[camera] release after failed open raised", exc_info=True)
            raise CameraNotFoundError(f"Could not open camera index {cam_idx}")
        try:
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.s.FRAME_WIDTH)
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.s.FRAME_HEIGHT)
        except Exception:
            # resolution is a request, not a requirement
            logger.debug("[camera] could not set frame size", exc_info=True)
        return cap

    def read(self) -> Optional[np.ndarray]:
        """
        Latest frame, or None when not acquired, suspended, or on a transient
        read glitch. Raises CameraDisconnectedError after MAX_READ_FAILURES
        consecutive failed reads.
        """
        if self._cap is None or self._suspended:
            return None
        ok, frame = self._cap.read()
        if not ok or frame is None:
            self._read_failures += 1
            if self._read_failures >= MAX_READ_FAILURES:
                logger.error(f"[camera] {self._read_failures} failed reads; device lost")
                raise CameraDisconnectedError("Camera stopped delivering frames")
            return None
        self._read_failures = 0
        return frame

    def suspend(self) -> None:
        self._suspended = True

    def resume(self) -> None:
        self._suspended = False

    def release(self) -> None:
        cap, self._cap = self._cap, None
        self._suspended = False
        self._read_failures = 0
        if cap is None:
            return
        try:
            cap.release()
            logger.info("[camera] released")
        except Exception:
            logger.exception("[camera] release raised; stream dropped anyway")

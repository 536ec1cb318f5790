"""
Configuration for the game session core.
"""
from pydantic import BaseModel
import os

SUPPORTED_DETECTORS = ("opencv", "ssd", "mtcnn", "retinaface", "mediapipe", "yunet")


class Settings(BaseModel):
    """
    Runtime settings with environment-variable overrides.
    """
    # Camera
    CAMERA_INDEX: int = int(os.getenv("CAMERA_INDEX", "0"))
    FRAME_WIDTH: int = int(os.getenv("FRAME_WIDTH", "640"))
    FRAME_HEIGHT: int = int(os.getenv("FRAME_HEIGHT", "480"))

    # Classifier
    DETECTOR_BACKEND: str = os.getenv("DETECTOR_BACKEND", "opencv")
    MIN_FACE_CONFIDENCE: float = float(os.getenv("MIN_FACE_CONFIDENCE", "0.5"))
    DETECTION_INTERVAL_MS: int = int(os.getenv("DETECTION_INTERVAL_MS", "100"))

    # Compliance policy
    SMILE_THRESHOLD: float = float(os.getenv("SMILE_THRESHOLD", "0.5"))
    EYE_CLOSURE_THRESHOLD: float = float(os.getenv("EYE_CLOSURE_THRESHOLD", "0.15"))
    VIOLATION_CONFIRMATIONS: int = int(os.getenv("VIOLATION_CONFIRMATIONS", "1"))
    PRECHECK_SMILE_THRESHOLD: float | None = (
        float(os.getenv("PRECHECK_SMILE_THRESHOLD")) if os.getenv("PRECHECK_SMILE_THRESHOLD") else None
    )
    PRECHECK_EYE_CLOSURE_THRESHOLD: float | None = (
        float(os.getenv("PRECHECK_EYE_CLOSURE_THRESHOLD")) if os.getenv("PRECHECK_EYE_CLOSURE_THRESHOLD") else None
    )

    # Player
    USER_ID: str = os.getenv("USER_ID", "guest")

    # Scoring
    POINTS_PER_SECOND: int = int(os.getenv("POINTS_PER_SECOND", "27"))
    SCORE_INTERVAL_SECONDS: float = float(os.getenv("SCORE_INTERVAL_SECONDS", "1"))
    LEVEL_THRESHOLD: int = int(os.getenv("LEVEL_THRESHOLD", "388800"))

    def __init__(self, **data):
        super().__init__(**data)
        # Normalize DETECTOR_BACKEND: strip comments/extra words, lower-case, validate
        backend = ((self.DETECTOR_BACKEND or "").strip().split() or ["opencv"])[0].lower()
        if backend not in SUPPORTED_DETECTORS:
            backend = "opencv"
        object.__setattr__(self, "DETECTOR_BACKEND", backend)

        # Pre-flight shares the in-game thresholds unless overridden
        if self.PRECHECK_SMILE_THRESHOLD is None:
            object.__setattr__(self, "PRECHECK_SMILE_THRESHOLD", self.SMILE_THRESHOLD)
        if self.PRECHECK_EYE_CLOSURE_THRESHOLD is None:
            object.__setattr__(self, "PRECHECK_EYE_CLOSURE_THRESHOLD", self.EYE_CLOSURE_THRESHOLD)

        object.__setattr__(self, "VIOLATION_CONFIRMATIONS", max(1, int(self.VIOLATION_CONFIRMATIONS)))

    @property
    def detection_interval(self) -> float:
        """Classifier poll interval in seconds."""
        return max(1, self.DETECTION_INTERVAL_MS) / 1000.0

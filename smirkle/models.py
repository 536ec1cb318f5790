"""
Pydantic data models shared by the session core and the API.
"""
from __future__ import annotations
from enum import Enum
from typing import List, Optional
import time

from pydantic import BaseModel, ConfigDict, Field


class ComplianceStatus(str, Enum):
    OK = "OK"
    SMILING = "SMILING"
    EYES_CLOSED = "EYES_CLOSED"
    NO_FACE = "NO_FACE"


class GamePhase(str, Enum):
    IDLE = "IDLE"
    PRECHECK = "PRECHECK"
    PLAYING = "PLAYING"
    PAUSED = "PAUSED"
    FAILED = "FAILED"
    STOPPED = "STOPPED"


TERMINAL_PHASES = (GamePhase.FAILED, GamePhase.STOPPED)
ACTIVE_PHASES = (GamePhase.PLAYING, GamePhase.PAUSED)


class DetectionSample(BaseModel):
    """One classifier output for one sampled frame. Immutable."""
    model_config = ConfigDict(frozen=True)

    face_detected: bool
    smile_probability: float = Field(0.0, ge=0.0, le=1.0)
    left_eye_openness: float = Field(1.0, ge=0.0)
    right_eye_openness: float = Field(1.0, ge=0.0)
    timestamp: float = Field(default_factory=time.monotonic)

    @classmethod
    def no_face(cls, timestamp: Optional[float] = None) -> "DetectionSample":
        # absence of a face must never read as a smile or closed eyes
        return cls(
            face_detected=False,
            smile_probability=0.0,
            left_eye_openness=1.0,
            right_eye_openness=1.0,
            timestamp=time.monotonic() if timestamp is None else timestamp,
        )


class Badge(BaseModel):
    id: str
    name: str
    description: str
    icon: str
    level_requirement: int
    min_lifetime_score: int = 0


class LevelInfo(BaseModel):
    level: int
    title: str
    points_required: int
    points_to_next_level: int
    progress: float


class PlayerProfile(BaseModel):
    user_id: str
    high_score: int = 0
    lifetime_score: int = 0
    level: int = 1
    badges: List[Badge] = Field(default_factory=list)


class SessionSummary(BaseModel):
    score: int
    duration_seconds: int
    fail_reason: Optional[ComplianceStatus] = None
    video_id: Optional[str] = None
    # beat the high score loaded at session start
    new_high_score: bool = False


class SessionSnapshot(BaseModel):
    """Read-only view of the session handed to UI subscribers."""
    phase: GamePhase
    score: int = 0
    elapsed_seconds: int = 0
    compliance_status: Optional[ComplianceStatus] = None
    fail_reason: Optional[ComplianceStatus] = None
    start_enabled: bool = False
    video_id: Optional[str] = None
    error: Optional[str] = None


class VideoContent(BaseModel):
    id: str
    youtube_id: str
    title: str
    description: str
    difficulty: str
    expected_duration: int

"""
Game session record and its transition function.

transition(session, event) mutates the given GameSession and returns the
side effects the controller must run, in order. It never touches timers,
the camera or persistence itself.

    IDLE -> PRECHECK -> PLAYING <-> PAUSED
    PLAYING -> FAILED
    PLAYING | PAUSED -> STOPPED
    FAILED | STOPPED -> IDLE   (restart only)
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from smirkle.models import (
    ACTIVE_PHASES,
    TERMINAL_PHASES,
    ComplianceStatus,
    DetectionSample,
    GamePhase,
    SessionSnapshot,
    SessionSummary,
)

logger = logging.getLogger(__name__)


class Effect(str, Enum):
    LOAD_PROFILE = "LOAD_PROFILE"
    ACQUIRE_CAMERA = "ACQUIRE_CAMERA"
    START_CLASSIFIER = "START_CLASSIFIER"
    STOP_CLASSIFIER = "STOP_CLASSIFIER"
    SUSPEND_CAMERA = "SUSPEND_CAMERA"
    RESUME_CAMERA = "RESUME_CAMERA"
    RELEASE_CAMERA = "RELEASE_CAMERA"
    ARM_MONITOR = "ARM_MONITOR"
    START_SCORING = "START_SCORING"
    PAUSE_SCORING = "PAUSE_SCORING"
    STOP_SCORING = "STOP_SCORING"
    RECORD_SUMMARY = "RECORD_SUMMARY"
    NOTIFY = "NOTIFY"


# ---- events ----
@dataclass(frozen=True)
class StartRequested:
    pass


@dataclass(frozen=True)
class ReadySignaled:
    pass


@dataclass(frozen=True)
class CameraReady:
    pass


@dataclass(frozen=True)
class AcquisitionFailed:
    message: str


@dataclass(frozen=True)
class SampleTaken:
    """Raw classifier output, posted by the poll loop."""
    sample: DetectionSample


@dataclass(frozen=True)
class ComplianceObserved:
    status: ComplianceStatus
    start_enabled: bool = False


@dataclass(frozen=True)
class ComplianceFailed:
    status: ComplianceStatus


@dataclass(frozen=True)
class ScoreTick:
    generation: int


@dataclass(frozen=True)
class PauseRequested:
    pass


@dataclass(frozen=True)
class ResumeRequested:
    pass


@dataclass(frozen=True)
class StopRequested:
    pass


@dataclass(frozen=True)
class RestartRequested:
    pass


@dataclass(frozen=True)
class VideoSelected:
    video_id: str


@dataclass
class GameSession:
    phase: GamePhase = GamePhase.IDLE
    score: int = 0
    elapsed_seconds: int = 0
    fail_reason: Optional[ComplianceStatus] = None
    compliance: Optional[ComplianceStatus] = None
    start_enabled: bool = False
    ready: bool = False
    summary_recorded: bool = False
    video_id: Optional[str] = None
    error: Optional[str] = None
    points_per_tick: int = 27

    def reset(self) -> None:
        """Fresh IDLE session; the selected video and award survive."""
        self.phase = GamePhase.IDLE
        self.score = 0
        self.elapsed_seconds = 0
        self.fail_reason = None
        self.compliance = None
        self.start_enabled = False
        self.ready = False
        self.summary_recorded = False
        self.error = None

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            phase=self.phase,
            score=self.score,
            elapsed_seconds=self.elapsed_seconds,
            compliance_status=self.compliance,
            fail_reason=self.fail_reason,
            start_enabled=self.phase == GamePhase.PRECHECK and self.start_enabled,
            video_id=self.video_id,
            error=self.error,
        )

    def summary(self) -> SessionSummary:
        return SessionSummary(
            score=self.score,
            duration_seconds=self.elapsed_seconds,
            fail_reason=self.fail_reason,
            video_id=self.video_id,
        )


def _enter(session: GameSession, phase: GamePhase) -> None:
    logger.debug(f"[session] {session.phase.value} -> {phase.value}")
    session.phase = phase


def _teardown(session: GameSession) -> List[Effect]:
    # scoring stops first so a queued tick can never land after the exit
    effects = [Effect.STOP_SCORING, Effect.STOP_CLASSIFIER, Effect.RELEASE_CAMERA]
    if not session.summary_recorded:
        session.summary_recorded = True
        effects.append(Effect.RECORD_SUMMARY)
    effects.append(Effect.NOTIFY)
    return effects


def _begin_play(session: GameSession) -> List[Effect]:
    _enter(session, GamePhase.PLAYING)
    session.start_enabled = False
    return [Effect.ARM_MONITOR, Effect.START_SCORING, Effect.NOTIFY]


def transition(session: GameSession, event) -> List[Effect]:
    phase = session.phase

    if phase in TERMINAL_PHASES:
        if isinstance(event, RestartRequested):
            session.reset()
            return [Effect.STOP_SCORING, Effect.STOP_CLASSIFIER, Effect.RELEASE_CAMERA, Effect.NOTIFY]
        if isinstance(event, CameraReady):
            # a stream that arrived after the session ended is dropped
            return [Effect.RELEASE_CAMERA]
        return []

    if isinstance(event, StartRequested):
        if phase == GamePhase.IDLE:
            session.error = None
            session.ready = False
            session.start_enabled = False
            session.compliance = None
            _enter(session, GamePhase.PRECHECK)
            return [Effect.LOAD_PROFILE, Effect.ACQUIRE_CAMERA, Effect.NOTIFY]
        if phase == GamePhase.PRECHECK:
            return transition(session, ReadySignaled())
        return []

    if isinstance(event, ReadySignaled):
        if phase != GamePhase.PRECHECK:
            return []
        session.ready = True
        if session.start_enabled:
            return _begin_play(session)
        return [Effect.NOTIFY]

    if isinstance(event, CameraReady):
        if phase == GamePhase.PRECHECK:
            return [Effect.START_CLASSIFIER]
        if phase == GamePhase.IDLE:
            return [Effect.RELEASE_CAMERA]
        return []

    if isinstance(event, AcquisitionFailed):
        session.error = event.message
        if phase == GamePhase.PRECHECK:
            _enter(session, GamePhase.IDLE)
            session.start_enabled = False
            session.ready = False
            return [Effect.STOP_CLASSIFIER, Effect.RELEASE_CAMERA, Effect.NOTIFY]
        if phase in ACTIVE_PHASES:
            _enter(session, GamePhase.STOPPED)
            return _teardown(session)
        return [Effect.NOTIFY]

    if isinstance(event, ComplianceObserved):
        if phase == GamePhase.PRECHECK:
            changed = (session.compliance != event.status
                       or session.start_enabled != event.start_enabled)
            session.compliance = event.status
            session.start_enabled = event.start_enabled
            if session.ready and session.start_enabled:
                return _begin_play(session)
            return [Effect.NOTIFY] if changed else []
        if phase == GamePhase.PLAYING:
            if session.compliance != event.status:
                session.compliance = event.status
                return [Effect.NOTIFY]
        return []

    if isinstance(event, ComplianceFailed):
        if phase != GamePhase.PLAYING:
            return []
        session.fail_reason = event.status
        session.compliance = event.status
        _enter(session, GamePhase.FAILED)
        return _teardown(session)

    if isinstance(event, ScoreTick):
        if phase != GamePhase.PLAYING:
            return []
        session.score += session.points_per_tick
        session.elapsed_seconds += 1
        return [Effect.NOTIFY]

    if isinstance(event, PauseRequested):
        if phase != GamePhase.PLAYING:
            return []
        _enter(session, GamePhase.PAUSED)
        return [Effect.PAUSE_SCORING, Effect.SUSPEND_CAMERA, Effect.NOTIFY]

    if isinstance(event, ResumeRequested):
        if phase != GamePhase.PAUSED:
            return []
        _enter(session, GamePhase.PLAYING)
        return [Effect.RESUME_CAMERA, Effect.START_SCORING, Effect.NOTIFY]

    if isinstance(event, StopRequested):
        if phase in ACTIVE_PHASES:
            _enter(session, GamePhase.STOPPED)
            return _teardown(session)
        if phase == GamePhase.PRECHECK:
            # abandoning the pre-flight is not a played session; nothing to record
            _enter(session, GamePhase.IDLE)
            session.start_enabled = False
            session.ready = False
            return [Effect.STOP_CLASSIFIER, Effect.RELEASE_CAMERA, Effect.NOTIFY]
        return []

    if isinstance(event, VideoSelected):
        if phase in (GamePhase.IDLE, GamePhase.PRECHECK):
            session.video_id = event.video_id
            return [Effect.NOTIFY]
        return []

    # RestartRequested outside a terminal phase, SampleTaken (handled by the controller)
    return []

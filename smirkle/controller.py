# smirkle/controller.py
"""
Game session controller.

Owns the GameSession and every resource that drives it:
- frame sampler + classifier poll loop (DETECTION_INTERVAL_MS)
- score accumulator (SCORE_INTERVAL_SECONDS)
- compliance monitor (fail latch)
- persistence hand-off of the session summary

The poll loop and the score timer never touch the session. They post
events onto one asyncio.Queue; a single consumer feeds them, in order,
through session.transition(). UI commands dispatch directly on the same
event loop, so a stop or a fail cancels the score timer in the same call
that changes the phase.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional, Set

from smirkle.camera import AcquisitionError, FrameSampler, user_message
from smirkle.classifier import ClassifierPort, ExpressionClassifierAdapter
from smirkle.compliance import CompliancePolicy, ComplianceMonitor, evaluate, precheck_ready
from smirkle.config import Settings
from smirkle.models import (
    ACTIVE_PHASES,
    TERMINAL_PHASES,
    ComplianceStatus,
    DetectionSample,
    GamePhase,
    PlayerProfile,
    SessionSnapshot,
    SessionSummary,
)
from smirkle.persistence import PersistencePort
from smirkle.scoring import ScoreAccumulator
from smirkle.session import (
    AcquisitionFailed,
    CameraReady,
    ComplianceFailed,
    ComplianceObserved,
    Effect,
    GameSession,
    PauseRequested,
    ReadySignaled,
    RestartRequested,
    ResumeRequested,
    SampleTaken,
    ScoreTick,
    StartRequested,
    StopRequested,
    VideoSelected,
    transition,
)
from smirkle.videos import default_video, next_video

logger = logging.getLogger(__name__)

SAVE_FAILED_MESSAGE = "Your score could not be saved. It is still shown here."

Subscriber = Callable[[SessionSnapshot], None]


class GameController:
    """Runs one player's game sessions, one at a time."""
    def __init__(self, settings: Settings, sampler: FrameSampler,
                 classifier: ClassifierPort, persistence: PersistencePort,
                 user_id: str = "guest"):
        self.s = settings
        self.sampler = sampler
        self.adapter = ExpressionClassifierAdapter(classifier, sampler)
        self.persistence = persistence
        self.user_id = user_id

        self.session = GameSession(points_per_tick=settings.POINTS_PER_SECOND,
                                   video_id=default_video())
        self.precheck_policy = CompliancePolicy.precheck_from_settings(settings)
        self.monitor = ComplianceMonitor(CompliancePolicy.from_settings(settings),
                                         self._on_violation,
                                         confirmations=settings.VIOLATION_CONFIRMATIONS)
        self.scoring = ScoreAccumulator(settings.SCORE_INTERVAL_SECONDS, self.post)

        self.profile: Optional[PlayerProfile] = None
        self.last_summary: Optional[SessionSummary] = None

        self._queue: asyncio.Queue = asyncio.Queue()
        self._consumer: Optional[asyncio.Task] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._acquire_task: Optional[asyncio.Task] = None
        self._acquire_seq = 0
        self._camera_lock = asyncio.Lock()
        self._background: Set[asyncio.Task] = set()
        self._records: Set[asyncio.Task] = set()
        self._subscribers: List[Subscriber] = []

    # ---- UI commands ----
    async def start(self) -> SessionSnapshot:
        """IDLE: begin the pre-flight check. PRECHECK: signal readiness."""
        self._ensure_consumer()
        self.dispatch(StartRequested())
        task = self._acquire_task
        if task is not None and not task.done():
            await task
        return self.snapshot()

    def ready(self) -> SessionSnapshot:
        return self.dispatch(ReadySignaled())

    def pause(self) -> SessionSnapshot:
        # seconds already played and ticked land before the timer is cancelled
        if self.session.phase == GamePhase.PLAYING:
            for _ in range(self.scoring.pending):
                self.process(ScoreTick(self.scoring.generation))
        return self.dispatch(PauseRequested())

    def resume(self) -> SessionSnapshot:
        return self.dispatch(ResumeRequested())

    def stop(self) -> SessionSnapshot:
        return self.dispatch(StopRequested())

    def restart(self) -> SessionSnapshot:
        return self.dispatch(RestartRequested())

    def skip_video(self) -> SessionSnapshot:
        return self.dispatch(VideoSelected(next_video(self.session.video_id)))

    def snapshot(self) -> SessionSnapshot:
        return self.session.snapshot()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)
        return unsubscribe

    # ---- lifecycle ----
    async def close(self) -> None:
        """Tear down whatever is running; safe to call more than once."""
        try:
            if self.session.phase in ACTIVE_PHASES or self.session.phase == GamePhase.PRECHECK:
                self.dispatch(StopRequested())
            if self._records:
                await asyncio.gather(*list(self._records), return_exceptions=True)
        finally:
            self.scoring.stop()
            self._stop_polling()
            self._release_camera()
            for task in list(self._background):
                task.cancel()
            if self._consumer is not None:
                self._consumer.cancel()
                self._consumer = None

    async def __aenter__(self) -> "GameController":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    # ---- event handling ----
    def post(self, event) -> None:
        """Queue an event from a timer or the poll loop."""
        self._queue.put_nowait(event)
        self._ensure_consumer()

    def process(self, event) -> SessionSnapshot:
        """Handle one queued event."""
        if isinstance(event, SampleTaken):
            self._on_sample(event.sample)
            return self.snapshot()
        if isinstance(event, ScoreTick) and not self.scoring.take(event.generation):
            logger.debug(f"[controller] dropping stale tick gen={event.generation}")
            return self.snapshot()
        return self.dispatch(event)

    def dispatch(self, event) -> SessionSnapshot:
        effects = transition(self.session, event)
        for effect in effects:
            self._run_effect(effect)
        return self.snapshot()

    def _on_sample(self, sample: DetectionSample) -> None:
        phase = self.session.phase
        if phase == GamePhase.PRECHECK:
            status = evaluate(sample, self.precheck_policy)
            self.dispatch(ComplianceObserved(status, precheck_ready(sample, self.precheck_policy)))
        elif phase == GamePhase.PLAYING:
            status = self.monitor.observe(sample)
            if self.session.phase == GamePhase.PLAYING:
                self.dispatch(ComplianceObserved(status))

    def _on_violation(self, status: ComplianceStatus) -> None:
        self.dispatch(ComplianceFailed(status))

    def _ensure_consumer(self) -> None:
        if self._consumer is None or self._consumer.done():
            self._consumer = asyncio.get_running_loop().create_task(self._consume())

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                self.process(event)
            except Exception:
                logger.exception(f"[controller] failed to process {event!r}")

    # ---- effects ----
    def _run_effect(self, effect: Effect) -> None:
        if effect == Effect.LOAD_PROFILE:
            self._spawn(self._load_profile())
        elif effect == Effect.ACQUIRE_CAMERA:
            self._acquire_seq += 1
            self._acquire_task = self._spawn(self._acquire(self._acquire_seq))
        elif effect == Effect.START_CLASSIFIER:
            if self._poll_task is None:
                self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop())
        elif effect == Effect.STOP_CLASSIFIER:
            self._stop_polling()
        elif effect == Effect.SUSPEND_CAMERA:
            self.sampler.suspend()
        elif effect == Effect.RESUME_CAMERA:
            self.sampler.resume()
        elif effect == Effect.RELEASE_CAMERA:
            self._release_camera()
        elif effect == Effect.ARM_MONITOR:
            self.monitor.reset()
        elif effect == Effect.START_SCORING:
            self.scoring.start()
        elif effect == Effect.PAUSE_SCORING:
            self.scoring.pause()
        elif effect == Effect.STOP_SCORING:
            self.scoring.stop()
        elif effect == Effect.RECORD_SUMMARY:
            summary = self.session.summary()
            if self.profile is not None:
                summary = summary.model_copy(
                    update={"new_high_score": summary.score > self.profile.high_score})
            self.last_summary = summary
            task = self._spawn(self._record(summary))
            self._records.add(task)
            task.add_done_callback(self._records.discard)
        elif effect == Effect.NOTIFY:
            self._notify()

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def _stop_polling(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task is not None:
            task.cancel()
        self.adapter.reset()

    def _release_camera(self) -> None:
        # invalidates any acquisition still in flight
        self._acquire_seq += 1
        self.sampler.release()

    def _notify(self) -> None:
        snap = self.snapshot()
        for callback in list(self._subscribers):
            try:
                callback(snap)
            except Exception:
                logger.exception("[controller] subscriber raised; continuing")

    # ---- async work ----
    async def _acquire(self, seq: int) -> None:
        async with self._camera_lock:
            if seq != self._acquire_seq:
                return
            # the previous stream must be gone before a new one opens
            self.sampler.release()
            try:
                await self.sampler.acquire()
            except AcquisitionError as e:
                if seq == self._acquire_seq:
                    self.dispatch(AcquisitionFailed(user_message(e)))
                return
            if seq != self._acquire_seq:
                logger.debug("[controller] acquisition outlived its session; releasing")
                self.sampler.release()
                return
        self.dispatch(CameraReady())

    async def _poll_loop(self) -> None:
        loop = asyncio.get_running_loop()
        interval = self.s.detection_interval
        next_t = loop.time()
        while True:
            try:
                sample = await self.adapter.detect()
            except AcquisitionError as e:
                logger.error(f"[controller] camera lost during play: {e}")
                self._poll_task = None
                self.post(AcquisitionFailed(user_message(e)))
                return
            if sample is not None:
                self.post(SampleTaken(sample))
            next_t = max(next_t + interval, loop.time())
            await asyncio.sleep(max(0.0, next_t - loop.time()))

    async def _load_profile(self) -> None:
        try:
            self.profile = await self.persistence.load_profile(self.user_id)
            logger.debug(f"[controller] loaded profile user={self.user_id} "
                         f"high_score={self.profile.high_score}")
        except Exception:
            logger.exception(f"[controller] failed to load profile user={self.user_id}")

    async def _record(self, summary: SessionSummary) -> None:
        try:
            await self.persistence.record_session(self.user_id, summary)
            logger.info(f"[controller] recorded session user={self.user_id} score={summary.score} "
                        f"duration={summary.duration_seconds}s fail_reason={summary.fail_reason}")
        except Exception:
            logger.exception(f"[controller] failed to record session user={self.user_id}")
            if self.session.phase in TERMINAL_PHASES:
                self.session.error = SAVE_FAILED_MESSAGE
                self._notify()

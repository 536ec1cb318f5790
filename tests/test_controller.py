import asyncio

from smirkle.camera import CameraNotFoundError
from smirkle.config import Settings
from smirkle.controller import SAVE_FAILED_MESSAGE
from smirkle.models import ComplianceStatus as CS, DetectionSample, GamePhase as P
from smirkle.session import SampleTaken, ScoreTick
from smirkle.videos import SAMPLE_VIDEOS

from fakes import (FakePersistence, FakeSampler, ScriptedClassifier, closed_eyes_sample,
                   make_controller, ok_sample, settle, smile_sample, to_playing)


def _tick(controller):
    controller.process(ScoreTick(controller.scoring.generation))


def test_full_round_scores_and_fails_on_smile(manual_settings):
    async def go():
        persistence = FakePersistence()
        async with make_controller(manual_settings, persistence=persistence) as c:
            await to_playing(c)
            assert c.snapshot().phase == P.PLAYING
            for _ in range(3):
                _tick(c)
            assert c.snapshot().score == 81
            c.process(SampleTaken(smile_sample()))
            snap = c.snapshot()
            assert snap.phase == P.FAILED and snap.fail_reason == CS.SMILING
            _tick(c)
            c.process(SampleTaken(ok_sample()))
            await settle()
            return c.snapshot(), persistence

    snap, persistence = asyncio.run(go())
    assert snap.score == 81 and snap.elapsed_seconds == 3
    assert snap.compliance_status == CS.SMILING
    assert len(persistence.recorded) == 1
    user_id, summary = persistence.recorded[0]
    assert user_id == "player-1"
    assert summary.score == 81 and summary.fail_reason == CS.SMILING


def test_tick_queued_before_a_smile_is_ignored(manual_settings):
    async def go():
        async with make_controller(manual_settings) as c:
            await to_playing(c)
            for _ in range(5):
                c.process(SampleTaken(ok_sample()))
            gen = c.scoring.generation
            c.process(SampleTaken(smile_sample(0.6)))
            # the tick fired just before the smile was classified
            c.process(ScoreTick(gen))
            return c.snapshot()

    snap = asyncio.run(go())
    assert snap.phase == P.FAILED
    assert snap.score == 0
    assert snap.fail_reason == CS.SMILING


def test_no_face_in_precheck_blocks_start(manual_settings):
    async def go():
        async with make_controller(manual_settings) as c:
            await c.start()
            for _ in range(10):
                c.process(SampleTaken(DetectionSample.no_face()))
                c.ready()
                await c.start()
            snap = c.snapshot()
            c.process(SampleTaken(ok_sample()))
            return snap, c.snapshot()

    blocked, after = asyncio.run(go())
    assert blocked.phase == P.PRECHECK and not blocked.start_enabled
    assert blocked.compliance_status == CS.NO_FACE
    assert after.phase == P.PLAYING


def test_closed_eyes_fail(manual_settings):
    async def go():
        async with make_controller(manual_settings) as c:
            await to_playing(c)
            c.process(SampleTaken(closed_eyes_sample()))
            return c.snapshot()

    snap = asyncio.run(go())
    assert snap.phase == P.FAILED and snap.fail_reason == CS.EYES_CLOSED


def test_camera_released_before_terminal_notify(manual_settings):
    calls = []

    async def go():
        sampler = FakeSampler(calls=calls, frames=False)
        async with make_controller(manual_settings, sampler=sampler) as c:
            c.subscribe(lambda snap: calls.append(f"notify:{snap.phase.value}"))
            await to_playing(c)
            c.process(SampleTaken(smile_sample()))

    asyncio.run(go())
    acquired = calls.index("acquire")
    failed = calls.index("notify:FAILED")
    assert "release" in calls[acquired:failed]
    assert "notify:PLAYING" in calls[acquired:failed]


def test_pause_suspends_and_resume_continues(manual_settings):
    calls = []

    async def go():
        sampler = FakeSampler(calls=calls, frames=False)
        async with make_controller(manual_settings, sampler=sampler) as c:
            await to_playing(c)
            _tick(c)
            c.pause()
            stale = c.scoring.generation
            c.process(ScoreTick(stale))
            c.process(SampleTaken(smile_sample()))  # ignored while paused
            paused = c.snapshot()
            c.resume()
            _tick(c)
            return paused, c.snapshot()

    paused, resumed = asyncio.run(go())
    assert paused.phase == P.PAUSED and paused.score == 27
    assert resumed.phase == P.PLAYING and resumed.score == 54
    assert calls.count("acquire") == 1
    assert calls.index("suspend") < calls.index("resume")


def test_summary_recorded_exactly_once(manual_settings):
    async def go():
        persistence = FakePersistence()
        async with make_controller(manual_settings, persistence=persistence) as c:
            await to_playing(c)
            _tick(c)
            c.stop()
            c.stop()
            c.process(SampleTaken(smile_sample()))
            await settle()
            snap = c.snapshot()
        return snap, persistence, c

    snap, persistence, c = asyncio.run(go())
    assert snap.phase == P.STOPPED and snap.fail_reason is None
    assert len(persistence.recorded) == 1
    assert c.last_summary.score == 27 and c.last_summary.duration_seconds == 1


def test_persistence_failure_keeps_summary_and_reports(manual_settings):
    async def go():
        async with make_controller(manual_settings, persistence=FakePersistence(fail=True)) as c:
            await to_playing(c)
            _tick(c)
            c.stop()
            await settle()
            return c.snapshot(), c.last_summary

    snap, summary = asyncio.run(go())
    assert snap.phase == P.STOPPED
    assert snap.error == SAVE_FAILED_MESSAGE
    assert snap.score == 27 and summary.score == 27


def test_acquisition_error_stays_idle(manual_settings):
    async def go():
        sampler = FakeSampler(acquire_error=CameraNotFoundError("index 0"))
        async with make_controller(manual_settings, sampler=sampler) as c:
            return await c.start()

    snap = asyncio.run(go())
    assert snap.phase == P.IDLE
    assert snap.error.startswith("No camera found")


def test_camera_loss_mid_game_stops_session():
    settings = Settings(DETECTION_INTERVAL_MS=10, SCORE_INTERVAL_SECONDS=3600)

    async def go():
        sampler = FakeSampler()
        persistence = FakePersistence()
        async with make_controller(settings, sampler=sampler, persistence=persistence) as c:
            await to_playing(c)
            sampler.lost = True
            for _ in range(100):
                await asyncio.sleep(0.01)
                if c.snapshot().phase != P.PLAYING:
                    break
            await settle()
            return c.snapshot(), persistence, sampler

    snap, persistence, sampler = asyncio.run(go())
    assert snap.phase == P.STOPPED
    assert snap.fail_reason is None
    assert "disconnected" in snap.error.lower()
    assert len(persistence.recorded) == 1
    assert not sampler.active


def test_restart_runs_precheck_again(manual_settings):
    calls = []

    async def go():
        async with make_controller(manual_settings, sampler=FakeSampler(calls=calls, frames=False)) as c:
            await to_playing(c)
            _tick(c)
            c.stop()
            c.restart()
            idle = c.snapshot()
            await c.start()
            return idle, c.snapshot()

    idle, again = asyncio.run(go())
    assert idle.phase == P.IDLE and idle.score == 0
    assert again.phase == P.PRECHECK
    assert calls.count("acquire") == 2


def test_stop_during_precheck_records_nothing(manual_settings):
    async def go():
        persistence = FakePersistence()
        async with make_controller(manual_settings, persistence=persistence) as c:
            await c.start()
            c.stop()
            await settle()
            return c.snapshot(), persistence

    snap, persistence = asyncio.run(go())
    assert snap.phase == P.IDLE
    assert persistence.recorded == []
    assert persistence.loaded == ["player-1"]


def test_skip_video_only_before_play(manual_settings):
    async def go():
        async with make_controller(manual_settings) as c:
            first = c.snapshot().video_id
            skipped = c.skip_video().video_id
            await to_playing(c)
            return first, skipped, c.skip_video().video_id

    first, skipped, during = asyncio.run(go())
    assert first == SAMPLE_VIDEOS[0].youtube_id
    assert skipped == SAMPLE_VIDEOS[1].youtube_id
    assert during == skipped


def test_failing_subscriber_does_not_break_session(manual_settings):
    seen = []

    async def go():
        async with make_controller(manual_settings) as c:
            c.subscribe(lambda snap: 1 / 0)
            unsubscribe = c.subscribe(seen.append)
            await to_playing(c)
            unsubscribe()
            _tick(c)
            return c.snapshot()

    snap = asyncio.run(go())
    assert snap.score == 27
    assert seen[-1].phase == P.PLAYING and seen[-1].score == 0


def test_real_timers_end_to_end():
    settings = Settings(DETECTION_INTERVAL_MS=10, SCORE_INTERVAL_SECONDS=0.05)
    script = [ok_sample()] * 40 + [smile_sample(0.9)]

    async def go():
        persistence = FakePersistence()
        async with make_controller(settings, sampler=FakeSampler(),
                                   classifier=ScriptedClassifier(script),
                                   persistence=persistence) as c:
            await c.start()
            c.ready()
            for _ in range(500):
                await asyncio.sleep(0.01)
                if c.snapshot().phase == P.FAILED:
                    break
            final = c.snapshot()
            await asyncio.sleep(0.15)
            later = c.snapshot()
            await settle()
            return final, later, persistence

    final, later, persistence = asyncio.run(go())
    assert final.phase == P.FAILED and final.fail_reason == CS.SMILING
    assert final.score > 0 and final.score % 27 == 0
    assert later.score == final.score
    assert len(persistence.recorded) == 1


def test_pause_right_after_a_tick_keeps_that_second():
    settings = Settings(DETECTION_INTERVAL_MS=3_600_000, SCORE_INTERVAL_SECONDS=0.05)

    async def go():
        async with make_controller(settings) as c:
            post = c.scoring._post
            paused = asyncio.Event()

            # the player pauses while the tick for a fully played second is still queued
            def post_then_pause(tick):
                post(tick)
                if not paused.is_set():
                    paused.set()
                    c.pause()
            c.scoring._post = post_then_pause

            await to_playing(c)
            await asyncio.wait_for(paused.wait(), timeout=2)
            await settle()
            during_pause = c.snapshot()
            c.resume()
            await asyncio.sleep(0.08)
            return during_pause, c.snapshot()

    during_pause, resumed = asyncio.run(go())
    assert during_pause.phase == P.PAUSED
    assert (during_pause.score, during_pause.elapsed_seconds) == (27, 1)
    assert resumed.phase == P.PLAYING and resumed.score >= 54


def test_summary_flags_new_high_score(manual_settings):
    async def go(ticks):
        persistence = FakePersistence()
        async with make_controller(manual_settings, persistence=persistence) as c:
            await to_playing(c)
            await settle()
            for _ in range(ticks):
                _tick(c)
            c.stop()
            await settle()
        return persistence.recorded[0][1]

    # the fake profile's high score is 100
    assert asyncio.run(go(4)).new_high_score is True
    assert asyncio.run(go(3)).new_high_score is False

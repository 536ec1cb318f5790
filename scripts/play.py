"""
CLI: play one round against the local webcam and print session updates.

Usage:
    python scripts/play.py --seconds 60
    uvicorn api.main:app --reload  # (separate, for the HTTP/WebSocket API)

Ctrl+C quits the round.
"""
from __future__ import annotations
import argparse
import asyncio
import json
import logging

from smirkle.camera import FrameSampler
from smirkle.classifier import DeepFaceClassifier
from smirkle.config import Settings
from smirkle.controller import GameController
from smirkle.models import TERMINAL_PHASES
from smirkle.persistence import InMemoryPersistence
from smirkle.progression import format_score, format_time


async def play(settings: Settings, max_seconds: float) -> dict:
    controller = GameController(
        settings,
        sampler=FrameSampler(settings),
        classifier=DeepFaceClassifier(settings),
        persistence=InMemoryPersistence(level_threshold=settings.LEVEL_THRESHOLD),
        user_id=settings.USER_ID,
    )
    done = asyncio.Event()

    def on_change(snap):
        print(f"{snap.phase.value:<8} {format_time(snap.elapsed_seconds)} "
              f"score={format_score(snap.score):>6} compliance={snap.compliance_status}")
        if snap.phase in TERMINAL_PHASES or snap.error:
            done.set()

    controller.subscribe(on_change)
    async with controller:
        snap = await controller.start()
        if snap.error:
            print(f"❌ {snap.error}")
            return {}
        # readiness is given up front; play begins on the first compliant frame
        controller.ready()
        try:
            await asyncio.wait_for(done.wait(), timeout=max_seconds)
        except asyncio.TimeoutError:
            controller.stop()
    summary = controller.last_summary
    return summary.model_dump(mode="json") if summary else {}


def main():
    p = argparse.ArgumentParser()
    p.add_argument("--seconds", type=float, default=300.0, help="Stop the round after this many seconds")
    p.add_argument("--camera", type=int, default=None, help="Camera index override")
    p.add_argument("--verbose", action="store_true", help="Debug logging")
    args = p.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    overrides = {"CAMERA_INDEX": args.camera} if args.camera is not None else {}
    settings = Settings(**overrides)
    try:
        result = asyncio.run(play(settings, args.seconds))
    except KeyboardInterrupt:
        return
    print(json.dumps(result, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()

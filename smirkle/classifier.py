"""
Expression classifier adapter.

Turns one camera frame into a DetectionSample:
- face presence from DeepFace (detector backend from Settings)
- smile probability = DeepFace "happy" emotion score, normalised to [0, 1]
- per-eye openness = eye-aspect ratio over MediaPipe FaceMesh eye landmarks

DeepFace and MediaPipe are imported lazily so tests can inject fakes through
sys.modules, the same way the detectors are swapped in the test-suite.
"""
from __future__ import annotations
import asyncio
import logging
from typing import Optional, Protocol, Sequence

import numpy as np
import cv2

from smirkle.config import Settings
from smirkle.models import DetectionSample

logger = logging.getLogger(__name__)

# MediaPipe FaceMesh indices, ordered outer/left corner, two upper lids,
# inner/right corner, two lower lids (same order as the 68-point eye contour).
RIGHT_EYE_IDX = (33, 160, 158, 133, 153, 144)
LEFT_EYE_IDX = (362, 385, 387, 263, 373, 380)

MIN_BOX = 24  # px


class ClassifierPort(Protocol):
    def detect(self, frame: np.ndarray) -> DetectionSample:
        ...


def _xy(p) -> tuple[float, float]:
    if hasattr(p, "x") and hasattr(p, "y"):
        return float(p.x), float(p.y)
    return float(p[0]), float(p[1])


def eye_aspect_ratio(points: Sequence) -> float:
    """
    Vertical eye opening divided by horizontal eye width.

    points: six (x, y) points or objects with .x/.y, ordered
    corner, upper, upper, corner, lower, lower. Fewer than six points
    cannot be measured and count as an open eye (1.0).
    """
    if len(points) < 6:
        return 1.0
    pts = [_xy(p) for p in points[:6]]
    top = (pts[1][1] + pts[2][1]) / 2.0
    bottom = (pts[4][1] + pts[5][1]) / 2.0
    horizontal = abs(pts[3][0] - pts[0][0])
    vertical = abs(bottom - top)
    return vertical / (horizontal + 0.001)


def is_smiling(sample: DetectionSample, smile_threshold: float) -> bool:
    return sample.face_detected and sample.smile_probability > smile_threshold


def eyes_open(sample: DetectionSample, eye_closure_threshold: float) -> bool:
    if not sample.face_detected:
        return True
    return (sample.left_eye_openness > eye_closure_threshold
            and sample.right_eye_openness > eye_closure_threshold)


class DeepFaceClassifier:
    """ClassifierPort backed by DeepFace (face + emotion) and MediaPipe (eye landmarks)."""
    def __init__(self, settings: Settings):
        self.s = settings
        self._mesh = None

    def _face_mesh(self):
        if self._mesh is None:
            import mediapipe as mp
            self._mesh = mp.solutions.face_mesh.FaceMesh(
                static_image_mode=False,
                max_num_faces=1,
                refine_landmarks=False,
                min_detection_confidence=self.s.MIN_FACE_CONFIDENCE,
                min_tracking_confidence=self.s.MIN_FACE_CONFIDENCE,
            )
        return self._mesh

    def _faces(self, frame: np.ndarray) -> list[dict]:
        from deepface import DeepFace
        dets = DeepFace.extract_faces(
            img_path=frame,
            detector_backend=self.s.DETECTOR_BACKEND,
            enforce_detection=False,
            align=True,
        )
        faces = []
        for d in dets or []:
            fa = (d or {}).get("facial_area") or {}
            w, h = int(fa.get("w", 0)), int(fa.get("h", 0))
            conf = d.get("confidence")
            try:
                conf = float(conf) if conf is not None else 1.0
            except (TypeError, ValueError):
                conf = 1.0
            # enforce_detection=False hands back the whole frame with confidence 0
            if w < MIN_BOX or h < MIN_BOX or conf < self.s.MIN_FACE_CONFIDENCE:
                continue
            faces.append({"x": int(fa.get("x", 0)), "y": int(fa.get("y", 0)), "w": w, "h": h})
        return faces

    def _smile_probability(self, chip: np.ndarray) -> float:
        from deepface import DeepFace
        res = DeepFace.analyze(
            chip,
            actions=["emotion"],
            enforce_detection=False,
            detector_backend="skip",
        )
        res = res if isinstance(res, list) else [res]
        r0 = res[0] if res else {}
        probs = r0.get("emotion") if isinstance(r0.get("emotion"), dict) else {}
        happy = float(probs.get("happy", 0.0))
        # DeepFace reports percentages
        if happy > 1.0:
            happy /= 100.0
        return max(0.0, min(1.0, happy))

    def _eye_openness(self, frame: np.ndarray) -> tuple[float, float]:
        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        result = self._face_mesh().process(rgb)
        if not getattr(result, "multi_face_landmarks", None):
            return 1.0, 1.0
        lm = result.multi_face_landmarks[0].landmark
        H, W = frame.shape[:2]
        left = [(lm[i].x * W, lm[i].y * H) for i in LEFT_EYE_IDX]
        right = [(lm[i].x * W, lm[i].y * H) for i in RIGHT_EYE_IDX]
        return eye_aspect_ratio(left), eye_aspect_ratio(right)

    def detect(self, frame: np.ndarray) -> DetectionSample:
        faces = self._faces(frame)
        if not faces:
            return DetectionSample.no_face()

        # largest face is the player
        primary = max(faces, key=lambda f: f["w"] * f["h"])
        x, y, w, h = primary["x"], primary["y"], primary["w"], primary["h"]
        chip = frame[y:y + h, x:x + w]
        smile_p = self._smile_probability(chip if chip.size else frame)
        left_ear, right_ear = self._eye_openness(frame)
        logger.debug(f"[classifier] face=({x},{y},{w},{h}) smile={smile_p:.2f} "
                     f"ear=({left_ear:.3f},{right_ear:.3f})")
        return DetectionSample(
            face_detected=True,
            smile_probability=smile_p,
            left_eye_openness=left_ear,
            right_eye_openness=right_ear,
        )


class ExpressionClassifierAdapter:
    """
    Samples the current frame and runs the classifier port off the event loop.

    Classifier faults never escape: the last sample produced (or a no-face
    sample when there is none yet) is returned instead. Camera loss does
    escape, as an AcquisitionError from the sampler.
    """
    def __init__(self, port: ClassifierPort, sampler):
        self.port = port
        self.sampler = sampler
        self._last: Optional[DetectionSample] = None

    @property
    def last_sample(self) -> Optional[DetectionSample]:
        return self._last

    def reset(self) -> None:
        self._last = None

    async def detect(self) -> Optional[DetectionSample]:
        frame = self.sampler.read()
        if frame is None:
            return None
        try:
            sample = await asyncio.to_thread(self.port.detect, frame)
        except Exception:
            logger.exception("[classifier] detection failed; reusing last sample")
            return self._last or DetectionSample.no_face()
        self._last = sample
        return sample

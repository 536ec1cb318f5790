"""
Compliance policy and in-game violation latch.

evaluate() maps one DetectionSample to a ComplianceStatus. The order of the
checks is fixed: smiling first, then closed eyes, then a missing face.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from smirkle.classifier import eyes_open, is_smiling
from smirkle.config import Settings
from smirkle.models import ComplianceStatus, DetectionSample

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompliancePolicy:
    smile_threshold: float = 0.5
    eye_closure_threshold: float = 0.15

    @classmethod
    def from_settings(cls, settings: Settings) -> "CompliancePolicy":
        return cls(settings.SMILE_THRESHOLD, settings.EYE_CLOSURE_THRESHOLD)

    @classmethod
    def precheck_from_settings(cls, settings: Settings) -> "CompliancePolicy":
        return cls(settings.PRECHECK_SMILE_THRESHOLD, settings.PRECHECK_EYE_CLOSURE_THRESHOLD)


def evaluate(sample: DetectionSample, policy: CompliancePolicy) -> ComplianceStatus:
    if is_smiling(sample, policy.smile_threshold):
        return ComplianceStatus.SMILING
    if not eyes_open(sample, policy.eye_closure_threshold):
        return ComplianceStatus.EYES_CLOSED
    if not sample.face_detected:
        return ComplianceStatus.NO_FACE
    return ComplianceStatus.OK


def precheck_ready(sample: Optional[DetectionSample], policy: CompliancePolicy) -> bool:
    """Gate for the start action; advisory only, never fails a session."""
    if sample is None:
        return False
    return evaluate(sample, policy) == ComplianceStatus.OK


class ViolationHysteresis:
    """Debounce non-OK statuses with consecutive confirmations."""
    def __init__(self, needed: int = 1):
        self.needed = max(1, int(needed))
        self.cnt = 0
        self.pending: Optional[ComplianceStatus] = None

    def step(self, status: ComplianceStatus) -> Optional[ComplianceStatus]:
        """
        Feed one evaluated status.
        - OK: clears counters
        - same violation as the previous sample: counts towards confirmation
        - a different violation: restarts the count for that violation
        Returns the violation once it has been seen `needed` times in a row.
        """
        if status == ComplianceStatus.OK:
            self.cnt = 0
            self.pending = None
            return None
        if status == self.pending:
            self.cnt += 1
        else:
            self.pending = status
            self.cnt = 1
        if self.cnt >= self.needed:
            return status
        return None

    def reset(self) -> None:
        self.cnt = 0
        self.pending = None


class ComplianceMonitor:
    """
    In-game enforcement. observe() evaluates each sample and calls on_fail
    exactly once, with the confirmed violation. After that every sample is
    ignored until reset().
    """
    def __init__(self, policy: CompliancePolicy,
                 on_fail: Callable[[ComplianceStatus], None],
                 confirmations: int = 1):
        self.policy = policy
        self._on_fail = on_fail
        self._debounce = ViolationHysteresis(confirmations)
        self.latched: Optional[ComplianceStatus] = None
        self.last_status: Optional[ComplianceStatus] = None

    def observe(self, sample: DetectionSample) -> ComplianceStatus:
        status = evaluate(sample, self.policy)
        if self.latched is not None:
            return status
        self.last_status = status
        confirmed = self._debounce.step(status)
        if confirmed is not None:
            self.latched = confirmed
            logger.info(f"[compliance] violation latched: {confirmed.value}")
            self._on_fail(confirmed)
        return status

    def reset(self) -> None:
        self._debounce.reset()
        self.latched = None
        self.last_status = None

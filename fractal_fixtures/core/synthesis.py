"""
Bounded rejection-sampling loop for fractal synthesis.

The loop is an explicit state machine:

    SAMPLING -> RENDERING -> EVALUATING -> ACCEPTED | RETRY | EXHAUSTED

RETRY returns to SAMPLING with a fresh viewport; the rejected raster is
dropped. Each attempt calls the sampler exactly once, so a run makes at most
``max_attempts`` sampler calls before reaching EXHAUSTED.
"""

from typing import List, Optional
from dataclasses import dataclass, field
from enum import Enum
import logging

from .math_functions import Viewport, Raster
from .complexity import AcceptanceBand, score, accepts
from ..errors import SynthesisExhausted, ConfigurationError

logger = logging.getLogger(__name__)


class SynthesisState(Enum):
    SAMPLING = "sampling"
    RENDERING = "rendering"
    EVALUATING = "evaluating"
    ACCEPTED = "accepted"
    RETRY = "retry"
    EXHAUSTED = "exhausted"


TERMINAL_STATES = (SynthesisState.ACCEPTED, SynthesisState.EXHAUSTED)


@dataclass(frozen=True)
class AttemptRecord:
    """Outcome of one sampling attempt."""
    attempt: int
    viewport: Viewport
    score: float
    accepted: bool


@dataclass
class SynthesisOutcome:
    """Accepted raster together with how it was found."""
    raster: Raster
    viewport: Viewport
    score: float
    attempts: int
    history: List[AttemptRecord] = field(default_factory=list)


class SynthesisLoop:
    """Sampler -> renderer -> evaluator loop with a finite attempt budget."""

    def __init__(self, sampler, renderer, band: AcceptanceBand, max_attempts: int,
                 width: int, height: int):
        """
        Initialize synthesis loop.

        Args:
            sampler: Object with ``sample() -> Viewport``
            renderer: Object with ``render(viewport, width, height) -> Raster``
            band: Acceptance window for the fractal pixel ratio
            max_attempts: Attempt budget, a positive integer
            width, height: Raster dimensions
        """
        if not isinstance(max_attempts, int) or isinstance(max_attempts, bool) or max_attempts <= 0:
            raise ConfigurationError(f"max_attempts must be a positive integer, got {max_attempts!r}")
        if width <= 0 or height <= 0:
            raise ValueError("Width and height must be positive")

        self.sampler = sampler
        self.renderer = renderer
        self.band = band
        self.max_attempts = max_attempts
        self.width = width
        self.height = height

        self.state = SynthesisState.SAMPLING
        self.history: List[AttemptRecord] = []

    def run(self) -> SynthesisOutcome:
        """
        Drive the state machine to a terminal state.

        Returns:
            SynthesisOutcome for the accepted raster

        Raises:
            SynthesisExhausted: if no attempt was accepted within the budget
        """
        self.state = SynthesisState.SAMPLING
        self.history = []

        attempt = 0
        viewport: Optional[Viewport] = None
        raster: Optional[Raster] = None
        ratio = 0.0

        while self.state not in TERMINAL_STATES:
            if self.state is SynthesisState.SAMPLING:
                attempt += 1
                viewport = self.sampler.sample()
                self.state = SynthesisState.RENDERING

            elif self.state is SynthesisState.RENDERING:
                raster = self.renderer.render(viewport, self.width, self.height)
                self.state = SynthesisState.EVALUATING

            elif self.state is SynthesisState.EVALUATING:
                ratio = score(raster)
                accepted = accepts(ratio, self.band)
                self.history.append(AttemptRecord(attempt, viewport, ratio, accepted))
                logger.info(f"Attempt {attempt}/{self.max_attempts}: fractal_ratio={ratio:.4f}"
                            f"{' accepted' if accepted else ''}")

                if accepted:
                    self.state = SynthesisState.ACCEPTED
                elif attempt >= self.max_attempts:
                    self.state = SynthesisState.EXHAUSTED
                else:
                    self.state = SynthesisState.RETRY

            elif self.state is SynthesisState.RETRY:
                raster = None
                self.state = SynthesisState.SAMPLING

        if self.state is SynthesisState.EXHAUSTED:
            best = max(record.score for record in self.history)
            raise SynthesisExhausted(attempt, best)

        return SynthesisOutcome(
            raster=raster,
            viewport=viewport,
            score=ratio,
            attempts=attempt,
            history=list(self.history),
        )

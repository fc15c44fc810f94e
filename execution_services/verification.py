"""
execution_services.verification -- Debounced balance verification.

Responsibility:
    Coalesce bursts of edits into a single external balance check
    (Net Financial Assets == Closing Balance) and apply only the result
    of the most recent request.

Architecture position:
    Services -- stateful, owns a sequence counter and the pending request.
    Time comes from an injected Clock; no timers or threads are started.
    The host calls ``run_due()`` from its event loop.

Invariants enforced:
    - Only the latest scheduled request is ever run; earlier requests are
      superseded, never queued.
    - A result is applied only if its request is still the latest; stale
      results are discarded and logged.
    - A failing verifier never blocks editing: the outcome degrades to
      "balanced, assumed" with a warning in the log.

Failure modes:
    - None raised.  Verifier errors of the ExecutionKernelError family
      (VerificationUnavailableError included) and transport failures
      (OSError, which covers ConnectionError and TimeoutError) degrade as
      described.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from execution_config.schema import EngineConfig
from execution_engines.code_mapping import CodeMapper
from execution_engines.recompute import recompute
from execution_engines.validation import Severity, ValidationFinding
from execution_kernel.domain.activities import ActivityTree
from execution_kernel.domain.clock import Clock
from execution_kernel.domain.values import ZERO, ExecutionState
from execution_kernel.exceptions import ExecutionKernelError
from execution_kernel.logging_config import get_logger

logger = get_logger("services.verification")


@dataclass(frozen=True)
class VerificationOutcome:
    is_balanced: bool
    difference: Decimal = ZERO
    assumed: bool = False
    message: str | None = None

    @classmethod
    def assumed_balanced(cls, reason: str) -> VerificationOutcome:
        return cls(is_balanced=True, assumed=True, message=reason)

    def findings(self) -> tuple[ValidationFinding, ...]:
        if self.is_balanced:
            return ()
        return (
            ValidationFinding(
                field="net_financial_assets",
                message=self.message or f"Balance verification reported a difference of {self.difference}",
                severity=Severity.WARNING,
                code="VERIFICATION_MISMATCH",
            ),
        )


@dataclass(frozen=True)
class VerificationRequest:
    sequence: int
    state: ExecutionState
    due_at: datetime


class BalanceVerifier(ABC):
    """Checks that a draft's Net Financial Assets equal its Closing Balance."""

    @abstractmethod
    def verify(self, state: ExecutionState) -> VerificationOutcome:
        """
        Raise VerificationUnavailableError when the check cannot run.

        Remote adapters may let OSError (ConnectionError, TimeoutError)
        escape; it degrades the same way.
        """


class LocalBalanceVerifier(BalanceVerifier):
    """Recomputes F and G in-process."""

    def __init__(self, tree: ActivityTree, *, mapper: CodeMapper, config: EngineConfig):
        self._tree = tree
        self._mapper = mapper
        self._config = config

    def verify(self, state: ExecutionState) -> VerificationOutcome:
        identity = recompute(state, self._tree, mapper=self._mapper, config=self._config).validation.identity
        return VerificationOutcome(is_balanced=identity.is_balanced, difference=identity.difference)


class DebouncedVerification:
    """
    Debounce window in front of a BalanceVerifier.

    Contract:
        ``schedule`` after every edit; ``run_due`` whenever the host's
        loop ticks.  ``complete`` is public so a host that runs the
        verifier asynchronously can hand results back itself.
    """

    def __init__(self, verifier: BalanceVerifier, clock: Clock, debounce_ms: int):
        self._verifier = verifier
        self._clock = clock
        self._window = timedelta(milliseconds=debounce_ms)
        self._sequence = 0
        self._pending: VerificationRequest | None = None
        self._latest: VerificationOutcome | None = None
        self._latest_sequence = 0

    @property
    def pending(self) -> VerificationRequest | None:
        return self._pending

    @property
    def latest(self) -> VerificationOutcome | None:
        """Most recently applied outcome."""
        return self._latest

    @property
    def current(self) -> VerificationOutcome | None:
        """Applied outcome, unless a newer request has been scheduled since."""
        if self._latest is None or self._latest_sequence != self._sequence:
            return None
        return self._latest

    @property
    def sequence(self) -> int:
        return self._sequence

    def schedule(self, state: ExecutionState) -> VerificationRequest:
        self._sequence += 1
        superseded = self._pending.sequence if self._pending else None
        self._pending = VerificationRequest(
            sequence=self._sequence,
            state=state,
            due_at=self._clock.now() + self._window,
        )
        logger.debug(
            "verification_scheduled",
            extra={"sequence": self._sequence, "superseded": superseded},
        )
        return self._pending

    def run_due(self) -> VerificationOutcome | None:
        """Run the pending request if its window has elapsed."""
        request = self._pending
        if request is None or self._clock.now() < request.due_at:
            return None
        self._pending = None
        outcome = self._call(request)
        return outcome if self.complete(request, outcome) else None

    def complete(self, request: VerificationRequest, outcome: VerificationOutcome) -> bool:
        """Apply ``outcome`` unless a newer request has been scheduled."""
        if request.sequence != self._sequence:
            logger.info(
                "stale_verification_discarded",
                extra={"sequence": request.sequence, "latest_sequence": self._sequence},
            )
            return False
        self._latest = outcome
        self._latest_sequence = request.sequence
        logger.info(
            "verification_applied",
            extra={
                "sequence": request.sequence,
                "is_balanced": outcome.is_balanced,
                "assumed": outcome.assumed,
                "difference": outcome.difference,
            },
        )
        return True

    def _call(self, request: VerificationRequest) -> VerificationOutcome:
        try:
            return self._verifier.verify(request.state)
        except (ExecutionKernelError, OSError) as exc:
            error_code = exc.code if isinstance(exc, ExecutionKernelError) else type(exc).__name__
            logger.warning(
                "balance_verification_unavailable",
                extra={"sequence": request.sequence, "error_code": error_code, "reason": str(exc)},
            )
            return VerificationOutcome.assumed_balanced(str(exc))

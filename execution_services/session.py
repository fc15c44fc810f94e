"""
execution_services.session -- Editable execution report draft.

Responsibility:
    Hold one report draft for one quarter, accept edits and clearances,
    and keep every derived figure current: each mutation recomputes the
    whole report synchronously, then schedules a debounced balance
    verification.

Architecture position:
    Services -- stateful host over the pure engines.  Receives the
    activity tree, configuration, clock and verifier by constructor
    injection; performs no I/O.

Invariants enforced:
    - Codes are resolved to storage codes before anything is stored.
    - Only the current quarter is editable; computed rows and accumulated
      surplus never are.
    - No edit is lost: the derived state is refreshed before a mutation
      returns.
    - Every mutation is logged inside a report-scoped LogContext.

Failure modes:
    - QuarterLockedError: edit aimed at a quarter other than the current one.
    - ActivityNotEditableError: edit aimed at a computed or locked row.
    - ActivityNotFoundError: unknown code.
    - Clearance errors propagate from ``execution_engines.clearance``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import replace
from decimal import Decimal
from typing import Any

from execution_config.schema import EngineConfig
from execution_engines.aggregation import TableRow
from execution_engines.balances import BalanceSnapshot
from execution_engines.clearance import (
    AdjustmentDirection,
    apply_prior_year_adjustment,
    apply_prior_year_cash_adjustment,
    clear_other_receivable,
    clear_payable,
    clear_vat,
)
from execution_engines.code_mapping import CodeMapper
from execution_engines.derived import ComputedValues
from execution_engines.expense_ledger import state_from_form_data
from execution_engines.recompute import RecomputeResult, recompute
from execution_engines.validation import ValidationResult
from execution_kernel.domain.activities import Activity, ActivityTree
from execution_kernel.domain.clock import Clock
from execution_kernel.domain.quarters import Quarter, QuarterContext
from execution_kernel.domain.values import (
    ActivityValue,
    ExecutionState,
    PaymentStatus,
    PreviousQuarterBalances,
    parse_amount,
)
from execution_kernel.exceptions import ActivityNotEditableError, QuarterLockedError
from execution_kernel.logging_config import LogContext, get_logger
from execution_services.verification import (
    BalanceVerifier,
    DebouncedVerification,
    LocalBalanceVerifier,
)

logger = get_logger("services.session")


class ExecutionSession:
    """
    One open execution report.

    Contract:
        The tree handed in may use schema or legacy codes; the session
        works on its canonicalized copy.  ``state.quarter`` is the
        current, editable quarter.

    Guarantees:
        - After any public mutation returns, ``state``, ``table``,
          ``computed``, ``balances`` and ``validation`` reflect it.
        - A rejected mutation leaves the draft unchanged.
    """

    def __init__(
        self,
        tree: ActivityTree,
        state: ExecutionState,
        *,
        config: EngineConfig,
        clock: Clock,
        verifier: BalanceVerifier | None = None,
        mapper: CodeMapper | None = None,
        report_id: str | None = None,
        facility_id: str | None = None,
    ) -> None:
        self._config = config
        self._clock = clock
        self._mapper = mapper or CodeMapper(config.code_aliases)
        self._tree = self._mapper.canonicalize_tree(tree)
        self._context = QuarterContext(current=state.quarter)
        self._report_id = report_id
        self._facility_id = facility_id
        self._verification = DebouncedVerification(
            verifier or LocalBalanceVerifier(self._tree, mapper=self._mapper, config=config),
            clock,
            config.verification_debounce_ms,
        )
        with self._log_context():
            self._result = self._recompute(state)
            logger.info(
                "execution_session_opened",
                extra={"leaf_count": len(self._tree.leaves()), "previous_exists": state.previous.exists},
            )

    @classmethod
    def from_form_data(
        cls,
        tree: ActivityTree,
        form_data: Mapping[str, Mapping[str, Any]],
        *,
        quarter: Quarter | str,
        config: EngineConfig,
        clock: Clock,
        previous: PreviousQuarterBalances | None = None,
        planned_budget: Any = None,
        verifier: BalanceVerifier | None = None,
        report_id: str | None = None,
        facility_id: str | None = None,
    ) -> ExecutionSession:
        """Open a session over a raw form payload keyed by activity code."""
        mapper = CodeMapper(config.code_aliases)
        state = state_from_form_data(
            form_data,
            quarter=Quarter.parse(quarter),
            mapper=mapper,
            previous=previous,
            planned_budget=planned_budget,
        )
        return cls(
            tree,
            state,
            config=config,
            clock=clock,
            verifier=verifier,
            mapper=mapper,
            report_id=report_id,
            facility_id=facility_id,
        )

    # ------------------------------------------------------------------
    # Read surface
    # ------------------------------------------------------------------

    @property
    def tree(self) -> ActivityTree:
        return self._tree

    @property
    def quarter_context(self) -> QuarterContext:
        return self._context

    @property
    def state(self) -> ExecutionState:
        return self._result.state

    @property
    def values(self) -> Mapping[str, ActivityValue]:
        return self._result.state.values

    @property
    def table(self) -> tuple[TableRow, ...]:
        return self._result.table

    @property
    def computed(self) -> ComputedValues:
        return self._result.computed

    @property
    def balances(self) -> BalanceSnapshot:
        return self._result.balances

    @property
    def validation(self) -> ValidationResult:
        """Local findings plus the verification outcome for the current draft."""
        local = self._result.validation
        outcome = self._verification.current
        if outcome is None:
            return local
        flagged = {finding.field for finding in local.findings}
        return local.with_findings(tuple(f for f in outcome.findings() if f.field not in flagged))

    @property
    def verification(self) -> DebouncedVerification:
        return self._verification

    def value(self, code: str) -> ActivityValue:
        return self.state.value_for(self._mapper.resolve(code))

    def run_verification(self):
        """Run the pending balance verification if its window has elapsed."""
        with self._log_context():
            return self._verification.run_due()

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def set_amount(self, code: str, amount: Any, quarter: Quarter | str | None = None) -> None:
        activity, q = self._editable(code, quarter)
        if activity.is_vat_expense:
            # VAT lines keep their VAT part; the entered amount is the net.
            vat = self.state.value_for(activity.code).vat_amount.get(q)
            self.set_vat_amounts(activity.code, amount, vat, q)
            return
        value = self.state.value_for(activity.code).with_amount(q, parse_amount(amount))
        self._commit("amount_set", activity.code, self.state.with_value(value))

    def set_vat_amounts(
        self,
        code: str,
        net_amount: Any,
        vat_amount: Any,
        quarter: Quarter | str | None = None,
    ) -> None:
        """Record net and VAT parts of a VAT-applicable expense; the amount becomes gross."""
        activity, q = self._editable(code, quarter)
        if not activity.is_vat_expense:
            raise ActivityNotEditableError(activity.code, "not a VAT-applicable expense")
        net, vat = parse_amount(net_amount), parse_amount(vat_amount)
        value = self.state.value_for(activity.code)
        value = replace(
            value,
            net_amount=value.net_amount.with_amount(q, net),
            vat_amount=value.vat_amount.with_amount(q, vat),
            amounts=value.amounts.with_amount(q, net + vat),
        )
        self._commit("vat_amounts_set", activity.code, self.state.with_value(value))

    def set_payment_status(
        self,
        code: str,
        status: PaymentStatus | str,
        quarter: Quarter | str | None = None,
    ) -> None:
        activity, q = self._editable(code, quarter)
        parsed = PaymentStatus.parse(status)
        if parsed is None:
            raise ValueError(f"Unknown payment status: {status!r}")
        value = self.state.value_for(activity.code)
        value = replace(value, payment_status=value.payment_status.with_status(q, parsed))
        self._commit("payment_status_set", activity.code, self.state.with_value(value))

    def set_amount_paid(self, code: str, amount: Any, quarter: Quarter | str | None = None) -> None:
        activity, q = self._editable(code, quarter)
        value = self.state.value_for(activity.code)
        value = replace(value, amount_paid=value.amount_paid.with_amount(q, parse_amount(amount)))
        self._commit("amount_paid_set", activity.code, self.state.with_value(value))

    def set_comment(self, code: str, comment: str | None) -> None:
        activity = self._tree.get(self._mapper.resolve(code))
        value = replace(self.state.value_for(activity.code), comment=comment or None)
        self._commit("comment_set", activity.code, self.state.with_value(value))

    # ------------------------------------------------------------------
    # Clearances
    # ------------------------------------------------------------------

    def clear_payable(self, payable_code: str, amount: Any) -> None:
        code = self._mapper.resolve(payable_code)
        with self._log_context():
            state = clear_payable(self.state, self._tree, code, parse_amount(amount), mapper=self._mapper)
        self._commit("payable_clearance_recorded", code, state)

    def clear_vat(self, expense_code: str, amount: Any) -> None:
        code = self._mapper.resolve(expense_code)
        with self._log_context():
            state = clear_vat(self.state, self._tree, code, parse_amount(amount), mapper=self._mapper)
        self._commit("vat_clearance_recorded", code, state)

    def clear_other_receivable(self, code: str, amount: Any) -> None:
        resolved = self._mapper.resolve(code)
        with self._log_context():
            state = clear_other_receivable(
                self.state, self._tree, resolved, parse_amount(amount), mapper=self._mapper
            )
        self._commit("other_receivable_clearance_recorded", resolved, state)

    def apply_prior_year_adjustment(
        self,
        adjustment_code: str,
        target_code: str,
        direction: AdjustmentDirection | str,
        amount: Any,
    ) -> None:
        adjustment = self._mapper.resolve(adjustment_code)
        with self._log_context():
            state = apply_prior_year_adjustment(
                self.state,
                self._tree,
                adjustment,
                self._mapper.resolve(target_code),
                direction,
                parse_amount(amount),
                mapper=self._mapper,
            )
        self._commit("prior_year_adjustment_recorded", adjustment, state)

    def apply_prior_year_cash_adjustment(
        self,
        adjustment_code: str,
        direction: AdjustmentDirection | str,
        amount: Any,
    ) -> None:
        adjustment = self._mapper.resolve(adjustment_code)
        with self._log_context():
            state = apply_prior_year_cash_adjustment(
                self.state,
                self._tree,
                adjustment,
                direction,
                parse_amount(amount),
                mapper=self._mapper,
            )
        self._commit("prior_year_cash_adjustment_recorded", adjustment, state)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _log_context(self):
        return LogContext.bind(
            report_id=self._report_id,
            facility_id=self._facility_id,
            quarter=self._context.current.value,
        )

    def _editable(self, code: str, quarter: Quarter | str | None) -> tuple[Activity, Quarter]:
        activity = self._tree.get(self._mapper.resolve(code))
        q = Quarter.parse(quarter) if quarter is not None else self._context.current
        if not self._context.is_editable(q):
            raise QuarterLockedError(q.value, self._context.current.value, activity.code)
        reason = self._context.row_lock_reason(activity, q)
        if reason is not None:
            raise ActivityNotEditableError(activity.code, reason)
        return activity, q

    def _recompute(self, state: ExecutionState) -> RecomputeResult:
        return recompute(state, self._tree, mapper=self._mapper, config=self._config)

    def _commit(self, event: str, code: str, state: ExecutionState) -> None:
        with self._log_context():
            self._result = self._recompute(state)
            request = self._verification.schedule(self._result.state)
            logger.info(
                event,
                extra={
                    "code": code,
                    "cash_at_bank": self._result.balances.cash_at_bank,
                    "can_submit": self._result.validation.can_submit,
                    "verification_sequence": request.sequence,
                },
            )

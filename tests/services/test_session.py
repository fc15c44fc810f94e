"""
Tests for the editable execution session.

Covers:
- Immediate recompute after every mutation
- Quarter locking and non-editable rows
- VAT-aware amount entry
- Clearances through schema codes
- Rejected mutations leave the draft unchanged
- Verification scheduling and report-scoped logging
"""

import json
import logging
from decimal import Decimal
from io import StringIO

import pytest

from execution_engines.clearance import AdjustmentDirection
from execution_kernel.domain.activities import VatCategory
from execution_kernel.domain.quarters import Quarter
from execution_kernel.domain.values import PaymentStatus
from execution_kernel.exceptions import (
    ActivityNotEditableError,
    ActivityNotFoundError,
    InvalidAmountError,
    QuarterLockedError,
)
from execution_kernel.logging_config import StructuredFormatter, configure_logging
from execution_services.session import ExecutionSession
from execution_services.verification import BalanceVerifier, VerificationOutcome


class _FixedVerifier(BalanceVerifier):
    def __init__(self, outcome):
        self.outcome = outcome

    def verify(self, state):
        return self.outcome


class _TimingOutVerifier(BalanceVerifier):
    def verify(self, state):
        raise TimeoutError("verification service timed out")


@pytest.fixture
def session(codes, raw_tree, engine_config, clock):
    return ExecutionSession.from_form_data(
        raw_tree,
        {
            codes.receipt: {"q1": 1000},
            codes.salary: {"q1": 400},
            codes.fuel: {"q1": 118, "netAmount": {"q1": 100}, "vatAmount": {"q1": 18}},
        },
        quarter="Q1",
        config=engine_config,
        clock=clock,
        report_id="rep-1",
        facility_id="fac-9",
    )


class TestOpening:
    def test_derived_values_ready_on_open(self, codes, session):
        assert session.balances.cash_at_bank == Decimal("1000")
        assert session.balances.payables[codes.payable_salaries] == Decimal("400")
        assert session.computed.surplus.q1 == Decimal("500")
        assert session.value(codes.cash).amounts.q1 == Decimal("1000")

    def test_tree_is_canonicalized(self, codes, session):
        assert session.tree.find(codes.vat_fuel) is not None
        assert session.value("HIV_EXEC_HOSPITAL_D_D-01_3").amounts.q1 == Decimal("18")

    def test_quarter_context(self, session):
        assert session.quarter_context.current == Quarter.Q1
        assert session.verification.pending is None

    def test_table_rows(self, session):
        assert [row.code for row in session.table][:3] == ["A", "B", "C"]


class TestEdits:
    def test_amount_recomputes_immediately(self, codes, session):
        session.set_amount(codes.receipt, "1,500")

        assert session.value(codes.receipt).amounts.q1 == Decimal("1500")
        assert session.balances.cash_at_bank == Decimal("1500")
        assert session.computed.receipts.q1 == Decimal("1500")

    def test_payment_status_moves_payable_to_cash(self, codes, session):
        session.set_payment_status(codes.salary, "paid")

        assert session.balances.payables[codes.payable_salaries] == Decimal("0")
        assert session.balances.cash_at_bank == Decimal("600")

    def test_partial_payment(self, codes, session):
        session.set_payment_status(codes.salary, PaymentStatus.PARTIAL)
        session.set_amount_paid(codes.salary, 150)

        assert session.balances.payables[codes.payable_salaries] == Decimal("250")
        assert session.balances.cash_at_bank == Decimal("850")

    def test_amount_on_vat_line_sets_net(self, codes, session):
        session.set_amount(codes.fuel, 200)

        value = session.value(codes.fuel)
        assert value.net_amount.q1 == Decimal("200")
        assert value.vat_amount.q1 == Decimal("18")
        assert value.amounts.q1 == Decimal("218")

    def test_vat_amounts(self, codes, session):
        session.set_vat_amounts(codes.communication, 1000, 180)

        assert session.value(codes.communication).amounts.q1 == Decimal("1180")
        assert session.computed.expenditures.q1 == Decimal("1500")
        assert session.balances.vat_receivables[VatCategory.COMMUNICATION_ALL] == Decimal("180")

    def test_vat_amounts_on_plain_line_rejected(self, codes, session):
        with pytest.raises(ActivityNotEditableError):
            session.set_vat_amounts(codes.salary, 10, 1)

    def test_comment(self, codes, session):
        session.set_comment(codes.cash, "reconciled with statement")

        assert session.value(codes.cash).comment == "reconciled with statement"


class TestEditGuards:
    def test_other_quarter_locked(self, codes, session):
        with pytest.raises(QuarterLockedError) as exc_info:
            session.set_amount(codes.receipt, 10, quarter="Q2")

        assert exc_info.value.current_quarter == "Q1"

    def test_computed_row_rejected(self, codes, session):
        with pytest.raises(ActivityNotEditableError):
            session.set_amount(codes.cash, 10)

    def test_accumulated_surplus_rejected(self, codes, session):
        with pytest.raises(ActivityNotEditableError) as exc_info:
            session.set_amount(codes.accumulated_surplus, 10)

        assert "accumulated surplus" in exc_info.value.reason

    def test_unknown_code(self, session):
        with pytest.raises(ActivityNotFoundError):
            session.set_amount("HIV_EXEC_HOSPITAL_A_99", 10)

    def test_unknown_status(self, codes, session):
        before = session.state

        with pytest.raises(ValueError):
            session.set_payment_status(codes.salary, "settled")

        assert session.state is before

    def test_rejected_clearance_leaves_draft_unchanged(self, codes, session):
        before = session.state

        with pytest.raises(InvalidAmountError):
            session.clear_payable(codes.payable_salaries, 0)

        assert session.state is before
        assert session.verification.pending is None


class TestClearances:
    def test_clear_payable(self, codes, session):
        session.clear_payable(codes.payable_salaries, "100")

        assert session.balances.payables[codes.payable_salaries] == Decimal("300")
        assert session.balances.cash_at_bank == Decimal("900")
        assert session.validation.identity.is_balanced

    def test_clear_vat_by_schema_receivable_code(self, codes, session):
        session.clear_vat("HIV_EXEC_HOSPITAL_D_D-01_3", 18)

        assert session.value(codes.fuel).vat_cleared.q1 == Decimal("18")
        assert session.balances.cash_at_bank == Decimal("1018")

    def test_prior_year_adjustment_by_schema_code(self, codes, session):
        session.apply_prior_year_adjustment(
            "HIV_EXEC_HOSPITAL_G_G-01_2", codes.payable_salaries, AdjustmentDirection.INCREASE, 40
        )

        assert session.value(codes.prior_year_payables).amounts.q1 == Decimal("-40")
        assert session.validation.identity.is_balanced

    def test_prior_year_cash_adjustment(self, codes, session):
        session.apply_prior_year_cash_adjustment("HIV_EXEC_HOSPITAL_G_G-01_1", "increase", 25)

        assert session.balances.cash_at_bank == Decimal("1025")
        assert session.validation.identity.is_balanced


class TestVerification:
    def test_edit_schedules_verification(self, codes, session):
        session.set_amount(codes.receipt, 10)
        session.set_amount(codes.receipt, 20)

        assert session.verification.pending.sequence == 2
        assert session.run_verification() is None

    def test_outcome_applied_after_window(self, codes, session, clock):
        session.set_amount(codes.receipt, 20)
        clock.advance_ms(300)

        outcome = session.run_verification()

        assert outcome.is_balanced
        assert not outcome.assumed
        assert session.verification.latest is outcome
        assert session.validation.can_submit

    def test_mismatch_surfaces_as_warning(self, codes, raw_tree, engine_config, clock, make_previous):
        session = ExecutionSession.from_form_data(
            raw_tree,
            {codes.receipt: {"q1": 10}},
            quarter=Quarter.Q1,
            config=engine_config,
            clock=clock,
            previous=make_previous(cash=500),
        )
        session.set_amount(codes.other_income, 5)
        clock.advance_ms(engine_config.verification_debounce_ms)

        outcome = session.run_verification()

        assert not outcome.is_balanced
        mismatches = [f for f in session.validation.warnings if f.field == "net_financial_assets"]
        assert [f.code for f in mismatches] == ["IDENTITY_MISMATCH"]
        assert session.validation.can_submit

    def test_external_mismatch_surfaces_as_warning(self, codes, raw_tree, engine_config, clock):
        session = ExecutionSession.from_form_data(
            raw_tree,
            {codes.receipt: {"q1": 10}},
            quarter=Quarter.Q1,
            config=engine_config,
            clock=clock,
            verifier=_FixedVerifier(VerificationOutcome(is_balanced=False, difference=Decimal("4"))),
        )
        session.set_amount(codes.other_income, 5)
        clock.advance_ms(engine_config.verification_debounce_ms)

        session.run_verification()

        assert session.validation.identity.is_balanced
        assert "VERIFICATION_MISMATCH" in {f.code for f in session.validation.warnings}

    def test_superseded_outcome_not_merged(self, codes, raw_tree, engine_config, clock):
        session = ExecutionSession.from_form_data(
            raw_tree,
            {codes.receipt: {"q1": 10}},
            quarter=Quarter.Q1,
            config=engine_config,
            clock=clock,
            verifier=_FixedVerifier(VerificationOutcome(is_balanced=False, difference=Decimal("4"))),
        )
        session.set_amount(codes.other_income, 5)
        clock.advance_ms(engine_config.verification_debounce_ms)
        session.run_verification()

        session.set_amount(codes.other_income, 6)

        assert session.verification.latest is not None
        assert session.verification.current is None
        assert "VERIFICATION_MISMATCH" not in {f.code for f in session.validation.warnings}

    def test_transport_failure_does_not_block(self, codes, raw_tree, engine_config, clock):
        session = ExecutionSession.from_form_data(
            raw_tree,
            {codes.receipt: {"q1": 10}},
            quarter=Quarter.Q1,
            config=engine_config,
            clock=clock,
            verifier=_TimingOutVerifier(),
        )
        session.set_amount(codes.other_income, 5)
        clock.advance_ms(engine_config.verification_debounce_ms)

        outcome = session.run_verification()

        assert outcome.assumed
        assert session.validation.can_submit


class TestSessionLogging:
    def test_mutations_logged_with_report_context(self, codes, session):
        stream = StringIO()
        handler = logging.StreamHandler(stream)
        handler.setFormatter(StructuredFormatter())
        configure_logging(handler=handler)

        session.set_amount(codes.receipt, 1200)

        records = [json.loads(line) for line in stream.getvalue().splitlines() if line]
        event = next(r for r in records if r["message"] == "amount_set")
        assert event["report_id"] == "rep-1"
        assert event["facility_id"] == "fac-9"
        assert event["quarter"] == "Q1"
        assert event["code"] == codes.receipt
        assert event["cash_at_bank"] == "1200"

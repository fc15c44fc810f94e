"""
Pytest fixtures for the execution engine test suite.

Provides:
- The hospital activity tree fixture (raw and canonicalized)
- The bundled engine configuration and its code mapper
- A deterministic clock
- Form-payload state builders and a recompute shortcut
"""

from dataclasses import dataclass
from pathlib import Path

import pytest

from execution_config import load_activity_tree, load_engine_config
from execution_engines.code_mapping import CodeMapper
from execution_engines.expense_ledger import state_from_form_data
from execution_engines.recompute import recompute
from execution_kernel.domain.clock import DeterministicClock
from execution_kernel.domain.quarters import Quarter
from execution_kernel.domain.values import PreviousQuarterBalances
from execution_kernel.logging_config import LogContext, reset_logging

FIXTURES = Path(__file__).parent / "fixtures"

P = "HIV_EXEC_HOSPITAL"


@dataclass(frozen=True)
class Codes:
    """Canonical storage codes of the fixture tree."""

    other_income: str = f"{P}_A_1"
    receipt: str = f"{P}_A_2"
    salary: str = f"{P}_B_B-01_1"
    communication: str = f"{P}_B_B-04_1"
    maintenance: str = f"{P}_B_B-04_2"
    fuel: str = f"{P}_B_B-04_3"
    supplies: str = f"{P}_B_B-04_4"
    overheads_total: str = f"{P}_B_B-04_TOTAL"
    transfer: str = f"{P}_B_B-05_1"
    cash: str = f"{P}_D_1"
    vat_communication: str = f"{P}_D_VAT_COMMUNICATION_ALL"
    vat_maintenance: str = f"{P}_D_VAT_MAINTENANCE"
    vat_fuel: str = f"{P}_D_VAT_FUEL"
    vat_supplies: str = f"{P}_D_VAT_SUPPLIES"
    other_receivables: str = f"{P}_D_D-01_5"
    payable_salaries: str = f"{P}_E_1"
    payable_communication: str = f"{P}_E_2"
    payable_maintenance: str = f"{P}_E_3"
    payable_fuel: str = f"{P}_E_4"
    payable_supplies: str = f"{P}_E_5"
    prior_year_cash: str = f"{P}_G_1"
    prior_year_payables: str = f"{P}_G_2"
    prior_year_receivables: str = f"{P}_G_3"
    accumulated_surplus: str = f"{P}_G_4"
    surplus_of_period: str = f"{P}_G_5"
    misc: str = f"{P}_X_1"


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


@pytest.fixture(scope="session")
def codes() -> Codes:
    return Codes()


@pytest.fixture(scope="session")
def engine_config():
    return load_engine_config()


@pytest.fixture(scope="session")
def mapper(engine_config) -> CodeMapper:
    return CodeMapper(engine_config.code_aliases)


@pytest.fixture(scope="session")
def raw_tree():
    """Activity tree as delivered by the catalog (schema codes)."""
    return load_activity_tree(FIXTURES / "activity_tree.yaml")


@pytest.fixture(scope="session")
def tree(raw_tree, mapper):
    """Activity tree on canonical storage codes."""
    return mapper.canonicalize_tree(raw_tree)


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock()


def previous_balances(
    *,
    cash: str | int = 0,
    payables: dict | None = None,
    receivables: dict | None = None,
    vat: dict | None = None,
    total: str | int | None = None,
    quarter: str = "Q4",
) -> PreviousQuarterBalances:
    d_section = {f"{P}_D_1": cash}
    d_section.update(receivables or {})
    return PreviousQuarterBalances.from_dict(
        {
            "exists": True,
            "quarter": quarter,
            "executionId": 41,
            "closingBalances": {
                "D": d_section,
                "E": payables or {},
                "G": {},
                "VAT": vat,
                "closingBalanceTotal": total,
            },
        }
    )


@pytest.fixture
def make_previous():
    return previous_balances


@pytest.fixture
def build_state(mapper):
    """Build an ExecutionState from a raw form payload."""

    def _build(form_data=None, *, quarter=Quarter.Q1, previous=None, planned_budget=None):
        return state_from_form_data(
            form_data or {},
            quarter=Quarter.parse(quarter),
            mapper=mapper,
            previous=previous,
            planned_budget=planned_budget,
        )

    return _build


@pytest.fixture
def run(tree, mapper, engine_config):
    """Recompute a state against the fixture tree."""

    def _run(state):
        return recompute(state, tree, mapper=mapper, config=engine_config)

    return _run

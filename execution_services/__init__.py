"""
Module: execution_services
Responsibility:
    Stateful hosts over the pure engines: the editable report session and
    the debounced balance verification in front of it.

Architecture position:
    Services -- the top layer.  Imports execution_engines,
    execution_config and execution_kernel; nothing imports it.
"""

from execution_services.session import ExecutionSession
from execution_services.verification import (
    BalanceVerifier,
    DebouncedVerification,
    LocalBalanceVerifier,
    VerificationOutcome,
    VerificationRequest,
)

__all__ = [
    "BalanceVerifier",
    "DebouncedVerification",
    "ExecutionSession",
    "LocalBalanceVerifier",
    "VerificationOutcome",
    "VerificationRequest",
]

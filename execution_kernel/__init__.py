"""
Execution Kernel

Domain model for quarterly financial-execution reports:
- Quarter-indexed amounts with explicit "not reported" slots
- Immutable activity tree with explicit VAT, payable and role attributes
- Typed exceptions with machine-readable codes
- Structured JSON logging with report-scoped context
"""

__version__ = "0.1.0"

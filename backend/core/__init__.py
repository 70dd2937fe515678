"""
Ledger core: sequence allocation, project ledger and financial aggregation
"""
from .errors import (
    LedgerError,
    NotFoundError,
    InvalidReferenceError,
    AllocationFailedError,
    LedgerValidationError,
    CounterResetRefusedError,
    ImmutableRecordError
)

from .financial_precision import (
    to_decimal,
    round_financial,
    to_float,
    validate_non_negative,
    safe_add,
    safe_subtract,
    safe_divide,
    ratio
)

from .atomic_numbering import (
    AtomicSequenceAllocator,
    SERIAL_KEYS,
    format_serial
)

from .entity_directory import (
    EntityDirectory,
    build_project_query
)

from .ledger_models import (
    ClientInstallmentCreate,
    EmployeePaymentCreate,
    ExpenseCreate,
    LedgerTransaction
)

from .aggregation_engine import (
    AggregationEngine,
    compute_financial_summary,
    compute_employee_breakdown
)

from .ledger_store import (
    LedgerStore,
    LEDGER_FIELDS
)

__all__ = [
    # Errors
    'LedgerError',
    'NotFoundError',
    'InvalidReferenceError',
    'AllocationFailedError',
    'LedgerValidationError',
    'CounterResetRefusedError',
    'ImmutableRecordError',
    # Financial Precision
    'to_decimal',
    'round_financial',
    'to_float',
    'validate_non_negative',
    'safe_add',
    'safe_subtract',
    'safe_divide',
    'ratio',
    # Sequence Allocator
    'AtomicSequenceAllocator',
    'SERIAL_KEYS',
    'format_serial',
    # Entity Directory
    'EntityDirectory',
    'build_project_query',
    # Ledger
    'ClientInstallmentCreate',
    'EmployeePaymentCreate',
    'ExpenseCreate',
    'LedgerTransaction',
    'LedgerStore',
    'LEDGER_FIELDS',
    # Aggregation
    'AggregationEngine',
    'compute_financial_summary',
    'compute_employee_breakdown',
]

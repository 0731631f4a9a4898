"""rentledger - financial statements, bank reconciliation and 1099 reporting for rental portfolios."""

__version__ = "0.1.0"

from rentledger.aggregator import CategoryAggregator, TTLCache
from rentledger.clients import HttpFilingGateway
from rentledger.config import configure_logging, get_settings
from rentledger.errors import (
    ConsistencyError,
    ExternalServiceError,
    NotFoundError,
    RentLedgerError,
    ValidationError,
)
from rentledger.export import LocalArtifactStore, ReportExporter, ReportFormat
from rentledger.models import (
    BankAccount,
    BankStatementLine,
    Category,
    DateRange,
    MaintenanceCost,
    RentCharge,
    ReportScope,
    Transaction,
    TransactionType,
    VendorAccount,
    VendorInvoice,
)
from rentledger.reconciliation import ReconciliationMatcher, ReconciliationResult
from rentledger.scheduling import ReportRunner, ReportScheduler, ReportType
from rentledger.statements import ComparisonBasis, StatementBuilder
from rentledger.store import InMemoryLedgerStore, LedgerStore
from rentledger.tax_forms import TaxFormGenerator

__all__ = [
    # Version
    "__version__",
    # Records
    "BankAccount",
    "BankStatementLine",
    "Category",
    "DateRange",
    "MaintenanceCost",
    "RentCharge",
    "ReportScope",
    "Transaction",
    "TransactionType",
    "VendorAccount",
    "VendorInvoice",
    # Store
    "InMemoryLedgerStore",
    "LedgerStore",
    # Reporting
    "CategoryAggregator",
    "TTLCache",
    "ComparisonBasis",
    "StatementBuilder",
    "ReconciliationMatcher",
    "ReconciliationResult",
    "TaxFormGenerator",
    # Export & scheduling
    "LocalArtifactStore",
    "ReportExporter",
    "ReportFormat",
    "ReportRunner",
    "ReportScheduler",
    "ReportType",
    # Clients
    "HttpFilingGateway",
    # Errors
    "RentLedgerError",
    "ValidationError",
    "ConsistencyError",
    "ExternalServiceError",
    "NotFoundError",
    # Config
    "get_settings",
    "configure_logging",
]

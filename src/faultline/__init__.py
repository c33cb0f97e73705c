"""
Faultline - error capture and reporting.

Wrap errors in managed exceptions, collect diagnostics for them as far as the
active guard allows, and report each one exactly once.
"""

from faultline.core.exceptions import (
    ArgumentException,
    EvalException,
    InvalidOperationException,
    ManagedException,
    NotImplementedException,
    RangeException,
    ReferenceException,
    SyntaxException,
    TypeException,
    URIException,
    create_custom_exception,
)
from faultline.core.guard import Guard
from faultline.core.handler import Handler, ReportRecord, ScopeOption
from faultline.core.options import Options
from faultline.core.registry import ErrorKind, classify_error
from faultline.shared.infrastructure.config import FaultlineSettings

__version__ = "0.1.0"

throw_if = ManagedException.throw_if
report_if = ManagedException.report_if

__all__ = [
    "ArgumentException",
    "ErrorKind",
    "EvalException",
    "FaultlineSettings",
    "Guard",
    "Handler",
    "InvalidOperationException",
    "ManagedException",
    "NotImplementedException",
    "Options",
    "RangeException",
    "ReferenceException",
    "ReportRecord",
    "ScopeOption",
    "SyntaxException",
    "TypeException",
    "URIException",
    "classify_error",
    "create_custom_exception",
    "report_if",
    "throw_if",
    "__version__",
]

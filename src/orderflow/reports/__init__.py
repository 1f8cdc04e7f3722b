"""
Regulatory reporting.

Example:
    >>> from orderflow.reports import RegulatoryReportGenerator
    >>>
    >>> result = await generator.generate("CA", date(2026, 1, 1), date(2026, 1, 31), admin)
    >>> result.reused
    False
"""

from orderflow.reports.pact import (
    PACT_COLUMNS,
    PactReportRow,
    RegulatoryReportGenerator,
    ReportContext,
    ReportResult,
    flatten_shipments,
    period_bounds,
    render_csv,
    report_file_key,
)

__all__ = [
    "PACT_COLUMNS",
    "PactReportRow",
    "RegulatoryReportGenerator",
    "ReportContext",
    "ReportResult",
    "flatten_shipments",
    "period_bounds",
    "render_csv",
    "report_file_key",
]

"""Prometheus metric definitions for the invoice workflow."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

approval_events_total = Counter(
    "approval_events_total",
    "Total invoice status transitions by workflow action and approver role.",
    labelnames=["action", "role"],
)

pdf_generation_seconds = Histogram(
    "invoice_pdf_generation_seconds",
    "Time spent converting a single invoice to PDF.",
    buckets=[0.1, 0.5, 1, 2, 5, 10, 30],
)

__all__ = [
    "approval_events_total",
    "pdf_generation_seconds",
]

"""CloudWatch Embedded Metric Format (EMF) metrics helper.

EMF allows embedding metrics directly in CloudWatch Logs, which are
automatically extracted and made available as CloudWatch Metrics.
"""

from __future__ import annotations

import json
import logging
import re
import time
from typing import Any

from taskimport.core.config import settings

logger = logging.getLogger(__name__)


class EMFMetrics:
    """Helper class to emit CloudWatch metrics in EMF format."""

    def __init__(self, namespace: str | None = None):
        if namespace:
            self.namespace = namespace
        elif settings.metrics_namespace:
            self.namespace = settings.metrics_namespace
        else:
            self.namespace = settings.service_name.replace(" ", "/")

    def emit_metric(
        self,
        metric_name: str,
        value: float,
        unit: str,
        dimensions: dict[str, str] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Emit a single metric in EMF format.

        Args:
            metric_name: Name of the metric
            value: Metric value
            unit: Unit of measurement (Count, Milliseconds, Bytes, etc.)
            dimensions: Optional dimensions for the metric
            metadata: Optional additional metadata to include in log
        """
        self.emit_metrics(
            metrics=[{"MetricName": metric_name, "Value": value, "Unit": unit}],
            dimensions=dimensions,
            metadata=metadata,
        )

    def emit_metrics(
        self,
        metrics: list[dict[str, Any]],
        dimensions: dict[str, str] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Emit multiple metrics in a single EMF log entry."""
        # Checked on every call so tests can toggle it at runtime
        if not settings.enable_metrics:
            return

        emf_log = self._build_emf_log(
            metrics=[
                {"MetricName": m["MetricName"], "Unit": m["Unit"]} for m in metrics
            ],
            dimensions=dimensions,
            metadata=metadata,
        )
        for metric in metrics:
            emf_log[metric["MetricName"]] = metric["Value"]

        logger.info(json.dumps(emf_log, default=str))

    def _build_emf_log(
        self,
        metrics: list[dict[str, str]],
        dimensions: dict[str, str] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        emf_log: dict[str, Any] = {
            "_aws": {
                "CloudWatchMetrics": [
                    {
                        "Namespace": self.namespace,
                        "Metrics": metrics,
                        "Dimensions": (
                            [[dim] for dim in dimensions.keys()] if dimensions else []
                        ),
                    }
                ],
                "Timestamp": int(time.time() * 1000),
            }
        }

        if dimensions:
            emf_log.update(dimensions)
        if metadata:
            emf_log.update(metadata)

        return emf_log


_emf_metrics: EMFMetrics | None = None


def get_metrics() -> EMFMetrics:
    """Get or create the global EMF metrics instance."""
    global _emf_metrics
    if _emf_metrics is None:
        _emf_metrics = EMFMetrics()
    return _emf_metrics


def emit_http_request(
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    **metadata: Any,
) -> None:
    """Emit HTTP request count and duration."""
    dimensions = {
        "Method": method,
        "Path": _normalize_path(path),
        "StatusCode": str(status_code),
    }

    get_metrics().emit_metrics(
        metrics=[
            {"MetricName": "RequestCount", "Value": 1, "Unit": "Count"},
            {"MetricName": "RequestDuration", "Value": duration_ms, "Unit": "Milliseconds"},
        ],
        dimensions=dimensions,
        metadata={"request_path": path, **metadata},
    )


def emit_error(
    error_code: str,
    status_code: int,
    path: str,
    method: str,
    **metadata: Any,
) -> None:
    """Emit error metrics.

    Args:
        error_code: Application error code
        status_code: HTTP status code
        path: Request path
        method: HTTP method
        **metadata: Additional metadata
    """
    if status_code >= 500:
        severity = "server_error"
    elif status_code >= 400:
        severity = "client_error"
    else:
        severity = "unknown"

    dimensions = {
        "ErrorCode": error_code,
        "StatusCode": str(status_code),
        "Severity": severity,
        "Method": method,
        "Path": _normalize_path(path),
    }

    get_metrics().emit_metrics(
        metrics=[{"MetricName": "ErrorCount", "Value": 1, "Unit": "Count"}],
        dimensions=dimensions,
        metadata={"request_path": path, **metadata},
    )


def emit_business_metric(
    metric_name: str,
    value: float,
    unit: str = "Count",
    category: str | None = None,
    **metadata: Any,
) -> None:
    """Emit business metric (e.g., imports started, rows processed)."""
    dimensions: dict[str, str] = {}
    if category:
        dimensions["Category"] = category

    get_metrics().emit_metric(
        metric_name=metric_name,
        value=value,
        unit=unit,
        dimensions=dimensions if dimensions else None,
        metadata=metadata,
    )


def _normalize_path(path: str) -> str:
    """Replace UUIDs and numeric IDs with placeholders to bound cardinality."""
    path = re.sub(
        r"/[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}",
        "/{id}",
        path,
        flags=re.IGNORECASE,
    )
    path = re.sub(r"/\d+", "/{id}", path)
    return path

"""Centralized service for emitting business metrics."""

from typing import Optional
from uuid import UUID

from taskimport.core.metrics import emit_business_metric
from taskimport.core.business_metrics import MetricCategory


class MetricsService:
    """Centralized service for emitting business metrics."""

    @staticmethod
    def emit_import_metric(
        metric_name: str,
        project_id: UUID,
        user_id: UUID,
        rows_processed: Optional[int] = None,
        **extra_metadata,
    ) -> None:
        """Emit an import-related metric.

        Args:
            metric_name: Metric name from BusinessMetric
            project_id: Target project ID
            user_id: ID of the user performing the import
            rows_processed: Number of rows processed (for ImportRowsProcessed)
            **extra_metadata: Additional metadata to include
        """
        metadata = {
            "project_id": str(project_id),
            "user_id": str(user_id),
        }
        if rows_processed is not None:
            metadata["rows_processed"] = rows_processed
        metadata.update(extra_metadata)

        emit_business_metric(
            metric_name=metric_name,
            value=rows_processed if rows_processed is not None else 1,
            category=MetricCategory.IMPORT.value,
            **metadata,
        )

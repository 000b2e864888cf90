"""Business metrics catalog with standardized naming."""

from enum import Enum


class MetricCategory(str, Enum):
    """Categories for grouping business metrics."""

    IMPORT = "import"


class BusinessMetric:
    """Catalog of all business metrics with standardized naming."""

    IMPORT_STARTED = "ImportStarted"
    IMPORT_COMPLETED = "ImportCompleted"
    IMPORT_FAILED = "ImportFailed"
    IMPORT_ROWS_PROCESSED = "ImportRowsProcessed"
    IMPORT_VALIDATION_ERROR = "ImportValidationError"
    IMPORT_ACCELERATOR_FALLBACK = "ImportAcceleratorFallback"

"""
Core metrics collection for SiteAudit using Prometheus
"""
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Histogram, Info, generate_latest

from core.config import settings
from core.logging import get_logger

# Create a global registry for the application
REGISTRY = CollectorRegistry()

# Application info
app_info = Info("siteaudit_app", "SiteAudit application information", registry=REGISTRY)

# Classification metrics
findings_classified = Counter(
    "siteaudit_findings_classified_total",
    "Total findings run through the classification rule evaluator",
    ["classification"],
    registry=REGISTRY,
)

findings_flagged = Counter(
    "siteaudit_findings_flagged_total",
    "Findings flagged for manual review because no criteria applied",
    ["category"],
    registry=REGISTRY,
)

reclassification_changes = Counter(
    "siteaudit_reclassification_changes_total",
    "Status changes produced by audit reclassification",
    ["direction"],
    registry=REGISTRY,
)

audits_reclassified = Counter(
    "siteaudit_audits_reclassified_total",
    "Total audits reclassified",
    ["persisted"],
    registry=REGISTRY,
)

# Performance metrics
aggregation_duration = Histogram(
    "siteaudit_aggregation_duration_seconds",
    "Time taken to aggregate page summaries into a priority breakdown",
    buckets=(0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5),
    registry=REGISTRY,
)

reclassification_duration = Histogram(
    "siteaudit_reclassification_duration_seconds",
    "Time taken to reclassify a single audit",
    buckets=(0.001, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0),
    registry=REGISTRY,
)

# Error metrics
error_count = Counter(
    "siteaudit_errors_total",
    "Total number of errors",
    ["error_type", "domain"],
    registry=REGISTRY,
)

config_reload_total = Counter(
    "siteaudit_config_reload_total",
    "Total configuration reloads",
    ["config_type", "status"],
    registry=REGISTRY,
)

config_reload_duration = Histogram(
    "siteaudit_config_reload_duration_seconds",
    "Configuration reload duration",
    ["config_type"],
    buckets=(0.001, 0.01, 0.05, 0.1, 0.5, 1.0),
    registry=REGISTRY,
)


class MetricsCollector:
    """Helper class for collecting metrics"""

    def __init__(self):
        self.logger = get_logger("metrics")
        self.enabled = settings.prometheus_enabled

        # Set application info
        app_info.info({"version": settings.app_version, "environment": settings.environment})

    def track_classification(self, classification: str, flagged: bool = False, category: str = ""):
        """Track a single classification outcome"""
        if not self.enabled:
            return
        findings_classified.labels(classification=classification).inc()
        if flagged:
            findings_flagged.labels(category=category or "uncategorized").inc()

    def track_reclassification(
        self, downgraded: int, upgraded: int, duration: float, persisted: bool = False
    ):
        """Track the outcome of reclassifying one audit"""
        if not self.enabled:
            return
        if downgraded:
            reclassification_changes.labels(direction="downgrade").inc(downgraded)
        if upgraded:
            reclassification_changes.labels(direction="upgrade").inc(upgraded)
        audits_reclassified.labels(persisted=str(persisted).lower()).inc()
        reclassification_duration.observe(duration)

    def track_aggregation(self, duration: float):
        """Track aggregation timing"""
        if not self.enabled:
            return
        aggregation_duration.observe(duration)

    def track_error(self, error_type: str, domain: str):
        """Track errors by exception type and domain package"""
        if not self.enabled:
            return
        error_count.labels(error_type=error_type, domain=domain).inc()

    def track_config_reload(self, config_type: str, duration: float, status: str = "success"):
        """Track configuration reload metrics"""
        config_reload_total.labels(config_type=config_type, status=status).inc()
        config_reload_duration.labels(config_type=config_type).observe(duration)

    def get_metrics(self) -> bytes:
        """Get current metrics in Prometheus format"""
        return generate_latest(REGISTRY)

    @property
    def content_type(self) -> str:
        return CONTENT_TYPE_LATEST


# Global metrics collector instance
metrics = MetricsCollector()


def get_metrics_collector() -> MetricsCollector:
    """Get the global metrics collector instance"""
    return metrics


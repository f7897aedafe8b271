"""Analytics package: client-side aggregation of organization data."""

from src.analytics.aggregator import AnalyticsAggregator, month_key, month_label
from src.analytics.service import AnalyticsService

__all__ = [
    "AnalyticsAggregator",
    "AnalyticsService",
    "month_key",
    "month_label",
]

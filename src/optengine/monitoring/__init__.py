"""
Position Monitoring

Asynchronous per-position refresh, P&L attribution, risk aggregation and
alerting.
"""

from optengine.monitoring.models import (
    AlertSeverity,
    AlertType,
    MonitoringAlert,
    MonitoringStats,
    PnLCalculation,
    PortfolioRisk,
    PositionSnapshot,
    RiskMetrics,
)
from optengine.monitoring.position_monitor import PositionMonitor
from optengine.monitoring.quote_source import (
    InMemoryQuoteSource,
    MarketConditionFeed,
    OptionQuote,
    QuoteSource,
    UnderlyingQuote,
)
from optengine.monitoring.registry import PositionRegistry
from optengine.monitoring.retry import fetch_with_retry

__all__ = [
    "AlertSeverity",
    "AlertType",
    "InMemoryQuoteSource",
    "MarketConditionFeed",
    "MonitoringAlert",
    "MonitoringStats",
    "OptionQuote",
    "PnLCalculation",
    "PortfolioRisk",
    "PositionMonitor",
    "PositionRegistry",
    "PositionSnapshot",
    "QuoteSource",
    "RiskMetrics",
    "UnderlyingQuote",
    "fetch_with_retry",
]

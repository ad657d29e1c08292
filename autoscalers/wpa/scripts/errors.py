"""Errors raised while computing a watermark replica recommendation."""

from typing import Any


class WatermarkError(Exception):
    """Base class for every failure of a single evaluation."""


class ConfigError(WatermarkError):
    """The autoscaler configuration file is missing or invalid."""


class SelectorError(WatermarkError):
    """The metric label selector cannot be turned into a filter."""


class MetricsSourceError(WatermarkError):
    """A metrics backend returned an error or no usable samples."""


class MetricsFetchError(WatermarkError):
    """Fetching the samples of one external metric failed.

    Carries enough context to tell which query failed. The underlying
    exception is chained as ``__cause__``.
    """

    def __init__(self, namespace: str, metric_name: str, selector: Any, cause: BaseException):
        self.namespace = namespace
        self.metric_name = metric_name
        self.selector = selector
        self.cause = cause
        super().__init__(
            f"unable to get external metric {namespace}/{metric_name}/{selector}: {cause}"
        )


class DegenerateMetricError(WatermarkError):
    """The scaling ratio would divide by zero."""

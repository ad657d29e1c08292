"""Watermark replica calculation.

The usage of an external metric is compared against a [low; high]
watermark band widened by a tolerance. Above the band the replicas scale
up proportionally to the high watermark, below it they scale down
proportionally to the low watermark. Inside the band the replica count is
left untouched.
"""

import logging
import math
from logging import Logger

from errors import DegenerateMetricError, MetricsFetchError
from metrics_source import MetricsSource
from selector import KubernetesSelectorResolver, SelectorResolver
from specs import Algorithm, AutoscalerSpec, CalculationResult, MetricSpec
from telemetry import NullTelemetry, TelemetrySink


class ReplicaCalculator:
    def __init__(
        self,
        metrics_source: MetricsSource,
        selector_resolver: SelectorResolver | None = None,
        telemetry: TelemetrySink | None = None,
        logger: Logger | None = None,
    ):
        self.metrics_source = metrics_source
        self.selector_resolver = selector_resolver or KubernetesSelectorResolver()
        self.telemetry = telemetry or NullTelemetry()
        self.logger = logger or logging.getLogger("replica_calc")

    def compute_replicas(
        self, current_replicas: int, metric: MetricSpec, wpa: AutoscalerSpec
    ) -> CalculationResult:
        """Return the replica count recommended for one external metric.

        Raises SelectorError before any fetch when the selector is
        malformed, MetricsFetchError when the samples cannot be fetched and
        DegenerateMetricError when the ratio would divide by zero. The
        telemetry of the (workload, metric) key is deleted on the last two.
        """
        metric_name = metric.metric_name
        label_selector = self.selector_resolver.resolve(metric.metric_selector)
        self.logger.info(f"Using label selector: {label_selector}")

        try:
            values, timestamp = self.metrics_source.fetch(metric_name, wpa.namespace, label_selector)
        except Exception as e:
            self.telemetry.delete(wpa.name, metric_name)
            raise MetricsFetchError(wpa.namespace, metric_name, metric.metric_selector, e) from e
        self.logger.info(f"Metrics from the external metrics source: {values}")

        self.logger.info(f"Algorithm is {wpa.algorithm.value}")
        averaged = 1.0
        if wpa.algorithm == Algorithm.AVERAGE:
            if current_replicas == 0:
                self._degenerate(wpa, metric_name, "cannot average usage over 0 replicas")
            averaged = float(current_replicas)

        total = sum(values)
        adjusted_usage = total / averaged
        milli_adjusted_usage = adjusted_usage / 1000
        utilization = int(adjusted_usage)
        high_mark = metric.high_watermark
        low_mark = metric.low_watermark

        self.logger.info(
            f"About to compare utilization {adjusted_usage} vs LWM {low_mark} and HWM {high_mark}"
        )

        adjusted_high_mark = high_mark + wpa.tolerance * high_mark
        adjusted_low_mark = low_mark - wpa.tolerance * low_mark

        # Strict comparisons: usage on a widened mark stays within bounds.
        if adjusted_usage > adjusted_high_mark:
            if high_mark == 0:
                self._degenerate(wpa, metric_name, "high watermark is 0")
            replica_count = math.ceil(current_replicas * adjusted_usage / high_mark)
            self.logger.info(
                f"Value is above highMark. Usage: {milli_adjusted_usage}. ReplicaCount {replica_count}"
            )
        elif adjusted_usage < adjusted_low_mark:
            if low_mark == 0:
                self._degenerate(wpa, metric_name, "low watermark is 0")
            replica_count = math.floor(current_replicas * adjusted_usage / low_mark)
            self.logger.info(
                f"Value is below lowMark. Usage: {milli_adjusted_usage}. ReplicaCount {replica_count}"
            )
        else:
            self.telemetry.set_restricted(wpa.name, metric_name, True)
            self.telemetry.set_value(wpa.name, metric_name, milli_adjusted_usage)
            self.logger.info(
                f"Within bounds of the watermarks. Value: {adjusted_usage} is "
                f"[{low_mark}; {high_mark}] Tol: +/- {wpa.tolerance * 100}%"
            )
            return CalculationResult(
                replica_count=current_replicas,
                utilization=utilization,
                timestamp=timestamp,
                milli_adjusted_usage=milli_adjusted_usage,
                restricted=True,
            )

        self.telemetry.set_restricted(wpa.name, metric_name, False)
        self.telemetry.set_value(wpa.name, metric_name, milli_adjusted_usage)
        return CalculationResult(
            replica_count=replica_count,
            utilization=utilization,
            timestamp=timestamp,
            milli_adjusted_usage=milli_adjusted_usage,
        )

    def _degenerate(self, wpa: AutoscalerSpec, metric_name: str, reason: str):
        self.telemetry.delete(wpa.name, metric_name)
        raise DegenerateMetricError(f"{wpa.namespace}/{wpa.name} metric {metric_name}: {reason}")

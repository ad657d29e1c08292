from datetime import datetime, timezone

import pytest
from prometheus_client import CollectorRegistry

from errors import MetricsSourceError
from metrics_source import MetricsSource
from replica_calculator import ReplicaCalculator
from specs import Algorithm, AutoscalerSpec, MetricSpec
from telemetry import PrometheusTelemetry

SAMPLE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeMetricsSource(MetricsSource):
    def __init__(self, values=None, timestamp=SAMPLE_TIME, error=None):
        self.values = values or []
        self.timestamp = timestamp
        self.error = error
        self.calls = []

    def fetch(self, metric_name, namespace, selector):
        self.calls.append((metric_name, namespace, selector))
        if self.error is not None:
            raise self.error
        return list(self.values), self.timestamp


def gauge_value(telemetry, name, workload="my-app", metric="requests"):
    return telemetry.registry.get_sample_value(name, {"wpa_name": workload, "metric_name": metric})


def restricted(telemetry, workload="my-app", metric="requests"):
    return gauge_value(telemetry, "watermarkpodautoscaler_restricted_scaling", workload, metric)


def usage(telemetry, workload="my-app", metric="requests"):
    return gauge_value(telemetry, "watermarkpodautoscaler_value", workload, metric)


def make_metric(high=2000, low=500, selector=None, name="requests"):
    return MetricSpec(
        metric_name=name,
        metric_selector=selector if selector is not None else {"matchLabels": {"app": "my-app"}},
        high_watermark=high,
        low_watermark=low,
    )


def make_wpa(algorithm=Algorithm.ABSOLUTE, tolerance=0.1):
    return AutoscalerSpec(name="my-app", namespace="default", algorithm=algorithm, tolerance=tolerance)


@pytest.fixture
def telemetry():
    return PrometheusTelemetry(CollectorRegistry())


@pytest.fixture
def source():
    return FakeMetricsSource()


@pytest.fixture
def calculator(source, telemetry):
    return ReplicaCalculator(source, telemetry=telemetry)


@pytest.fixture
def failing_source():
    return FakeMetricsSource(error=MetricsSourceError("backend unavailable"))

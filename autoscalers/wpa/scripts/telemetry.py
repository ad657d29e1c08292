"""Telemetry published for each (workload, metric) evaluation."""

from abc import ABC, abstractmethod

from prometheus_client import CollectorRegistry, Gauge, push_to_gateway

LABELS = ["wpa_name", "metric_name"]


class TelemetrySink(ABC):
    @abstractmethod
    def set_restricted(self, workload: str, metric: str, restricted: bool) -> None:
        pass

    @abstractmethod
    def set_value(self, workload: str, metric: str, value: float) -> None:
        pass

    @abstractmethod
    def delete(self, workload: str, metric: str) -> None:
        """Drop both gauges of the key; no-op when they were never set."""
        pass


class NullTelemetry(TelemetrySink):
    def set_restricted(self, workload, metric, restricted):
        pass

    def set_value(self, workload, metric, value):
        pass

    def delete(self, workload, metric):
        pass


class PrometheusTelemetry(TelemetrySink):
    """Gauges registered on their own registry so several instances can coexist."""

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry if registry is not None else CollectorRegistry()
        self.restricted_scaling = Gauge(
            "watermarkpodautoscaler_restricted_scaling",
            "Whether the scaling is restricted by the watermarks tolerance band",
            LABELS,
            registry=self.registry,
        )
        self.value = Gauge(
            "watermarkpodautoscaler_value",
            "Adjusted value of the metric used for the scaling decision",
            LABELS,
            registry=self.registry,
        )

    def set_restricted(self, workload, metric, restricted):
        self.restricted_scaling.labels(wpa_name=workload, metric_name=metric).set(1 if restricted else 0)

    def set_value(self, workload, metric, value):
        self.value.labels(wpa_name=workload, metric_name=metric).set(value)

    def delete(self, workload, metric):
        for gauge in (self.restricted_scaling, self.value):
            try:
                gauge.remove(workload, metric)
            except KeyError:
                # never set for this key
                pass

    def push(self, gateway: str, job: str) -> None:
        push_to_gateway(gateway, job=job, registry=self.registry)

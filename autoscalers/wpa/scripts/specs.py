"""Specs consumed and produced by the replica calculator.

Watermarks are kept as milli-values (quantity x 1000) so that thresholds
such as "500m" are stored exactly. Conversion to float happens only inside
the calculation.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_CEILING
from enum import Enum
from typing import Any

from kubernetes.utils.quantity import parse_quantity

from errors import ConfigError


class Algorithm(str, Enum):
    AVERAGE = "average"
    ABSOLUTE = "absolute"

    @classmethod
    def from_value(cls, value: Any) -> "Algorithm":
        """Map a configured algorithm to a variant, unknown values to ABSOLUTE."""
        if isinstance(value, Algorithm):
            return value
        if isinstance(value, str) and value == cls.AVERAGE.value:
            return cls.AVERAGE
        return cls.ABSOLUTE


def milli_value(quantity: Any) -> int:
    """Return a Kubernetes quantity ("2", "500m", "1.5k", 3) as a milli-value.

    Sub-milli fractions round up, as Quantity.MilliValue() does.
    """
    if isinstance(quantity, float):
        # unquoted YAML numbers: keep their decimal text, not the binary value
        quantity = str(quantity)
    try:
        milli = parse_quantity(quantity) * 1000
        return int(milli.to_integral_value(rounding=ROUND_CEILING))
    except (ValueError, ArithmeticError) as e:
        raise ConfigError(f"invalid quantity {quantity!r}: {e}") from e


@dataclass(frozen=True)
class MetricSpec:
    """One external metric and its watermarks (milli-values)."""

    metric_name: str
    metric_selector: Any
    high_watermark: int
    low_watermark: int


@dataclass(frozen=True)
class AutoscalerSpec:
    """Scaling policy of one workload."""

    name: str
    namespace: str
    algorithm: Algorithm = Algorithm.ABSOLUTE
    tolerance: float = 0.0
    min_replicas: int = 0
    max_replicas: int = 0


@dataclass(frozen=True)
class CalculationResult:
    replica_count: int
    utilization: int
    timestamp: datetime
    milli_adjusted_usage: float = 0.0
    restricted: bool = False


def parse_metric_spec(raw: dict[str, Any], logger=None) -> MetricSpec:
    """Build a MetricSpec from one entry of the `metrics` config list."""
    if not isinstance(raw, dict):
        raise ConfigError(f"metric entry must be a mapping, got {type(raw).__name__}")
    name = raw.get("metricName")
    if not name:
        raise ConfigError("metric entry must include 'metricName'")
    for key in ("highWatermark", "lowWatermark"):
        if key not in raw:
            raise ConfigError(f"metric {name} must include '{key}'")

    spec = MetricSpec(
        metric_name=name,
        metric_selector=raw.get("metricSelector"),
        high_watermark=milli_value(raw["highWatermark"]),
        low_watermark=milli_value(raw["lowWatermark"]),
    )
    if spec.high_watermark < spec.low_watermark and logger is not None:
        logger.warning(
            f"metric {name}: highWatermark {spec.high_watermark}m is below lowWatermark {spec.low_watermark}m"
        )
    return spec


def parse_autoscaler_spec(config: dict[str, Any], name: str, namespace: str) -> AutoscalerSpec:
    """Build an AutoscalerSpec; `name` and `namespace` are used when the config omits them."""
    try:
        tolerance = float(config.get("tolerance", 0.0))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid tolerance: {e}") from e
    if tolerance < 0:
        raise ConfigError(f"tolerance must be non-negative, got {tolerance}")

    min_replicas = config.get("minReplicas", 0)
    max_replicas = config.get("maxReplicas", 0)
    if not isinstance(min_replicas, int) or not isinstance(max_replicas, int):
        raise ConfigError("minReplicas and maxReplicas must be integers")
    if min_replicas < 0 or (max_replicas and max_replicas < min_replicas):
        raise ConfigError(f"invalid replica bounds [{min_replicas}; {max_replicas}]")

    return AutoscalerSpec(
        name=config.get("name") or name,
        namespace=config.get("namespace") or namespace,
        algorithm=Algorithm.from_value(config.get("algorithm")),
        tolerance=tolerance,
        min_replicas=min_replicas,
        max_replicas=max_replicas,
    )

import json
import os
import sys
import yaml

from adapter_logger import AdapterLogger
from errors import ConfigError, WatermarkError
from metrics_source import MetricsSource, PrometheusMetricsSource
from replica_calculator import ReplicaCalculator
from specs import AutoscalerSpec, MetricSpec, parse_autoscaler_spec, parse_metric_spec
from telemetry import PrometheusTelemetry


DEFAULT_CONFIG = '/config.yaml'
DEFAULT_PROMETHEUS_TIMEOUT = 10


logger = AdapterLogger("evaluate").logger


def load_config(configfile: str = DEFAULT_CONFIG) -> dict:
    try:
        with open(configfile) as file:
            config = yaml.safe_load(file)
    except OSError as e:
        raise ConfigError(f"failed to read config file {configfile}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"failed to parse config file: {e}") from e
    if config is None:
        raise ConfigError("config file was empty")
    if not isinstance(config, dict):
        raise ConfigError("config file must hold a mapping")
    return config


def metric_specs_from_config(config: dict) -> list[MetricSpec]:
    raw_metrics = config.get('metrics')
    if not raw_metrics or not isinstance(raw_metrics, list):
        raise ConfigError("config must include a non-empty 'metrics' list")
    return [parse_metric_spec(m, logger) for m in raw_metrics]


def evaluate_metrics(calculator: ReplicaCalculator, current_replicas: int,
                     metric_specs: list[MetricSpec], wpa: AutoscalerSpec) -> list[int]:
    """Return one replica proposal per metric that could be evaluated."""
    proposals = []
    for metric in metric_specs:
        try:
            result = calculator.compute_replicas(current_replicas, metric, wpa)
        except WatermarkError as e:
            logger.error(f"Skipping metric {metric.metric_name}: {e}")
            continue
        logger.info(
            f"{metric.metric_name}: utilization {result.utilization}m at {result.timestamp.isoformat()} "
            f"proposes {result.replica_count} replicas"
        )
        proposals.append(result.replica_count)
    return proposals


def plan(current_replicas: int, proposals: list[int], min_replicas: int, max_replicas: int) -> int:
    """Keep the highest proposal within [min_replicas, max_replicas].

    A max_replicas of 0 leaves the count unbounded above.
    """
    if not proposals:
        logger.info(f"No usable proposal, keeping {current_replicas} replicas")
        return current_replicas

    desired_replicas = max(proposals)
    logger.info(f"calculated desired_replicas {desired_replicas}")

    desired_replicas = max(desired_replicas, min_replicas)
    if max_replicas > 0:
        desired_replicas = min(desired_replicas, max_replicas)
    return desired_replicas


def main(spec_raw: str, configfile: str | None = None,
         metrics_source: MetricsSource | None = None):
    logger.info("Starting evaluate script")

    try:
        config = load_config(configfile or os.getenv("WPA_CONFIG", DEFAULT_CONFIG))
        spec = json.loads(spec_raw)
        metrics = json.loads(spec['metrics'][0]['value'])
        wpa = parse_autoscaler_spec(config, metrics['name'], metrics['namespace'])
        metric_specs = metric_specs_from_config(config)
        current_replicas = metrics['current_replicas']
    except (ConfigError, ValueError, TypeError, KeyError, IndexError) as e:
        logger.error(f"Cannot evaluate: {e}")
        return

    if metrics_source is None:
        if not config.get('prometheusUrl'):
            logger.error("config must include 'prometheusUrl'")
            return
        metrics_source = PrometheusMetricsSource(
            config['prometheusUrl'],
            timeout=config.get('prometheusTimeout', DEFAULT_PROMETHEUS_TIMEOUT),
        )

    telemetry = PrometheusTelemetry()
    calculator = ReplicaCalculator(metrics_source, telemetry=telemetry, logger=logger)

    proposals = evaluate_metrics(calculator, current_replicas, metric_specs, wpa)
    target_replicas = plan(current_replicas, proposals, wpa.min_replicas, wpa.max_replicas)

    if config.get('pushgateway'):
        try:
            telemetry.push(config['pushgateway'], job=f"wpa-{wpa.namespace}-{wpa.name}")
        except OSError as e:
            logger.warning(f"Failed to push telemetry to {config['pushgateway']}: {e}")

    write_evaluation(target_replicas)


def write_evaluation(replicas: int):
    evaluation = {
        "targetReplicas": replicas
    }
    logger.info(json.dumps(evaluation))
    sys.stdout.write(json.dumps(evaluation))


if __name__ == "__main__":
    main(sys.stdin.read())

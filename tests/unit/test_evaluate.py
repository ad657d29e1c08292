import json

import pytest

import evaluate
from conftest import FakeMetricsSource, make_metric, make_wpa
from errors import ConfigError, MetricsSourceError
from replica_calculator import ReplicaCalculator

CONFIG = """
algorithm: average
tolerance: 0.1
minReplicas: 1
maxReplicas: 10
prometheusUrl: http://prometheus:9090
metrics:
  - metricName: requests
    metricSelector:
      matchLabels:
        app: web
    highWatermark: "2"
    lowWatermark: "500m"
"""


def cpa_spec(current_replicas=4, name="web", namespace="default"):
    value = json.dumps({"current_replicas": current_replicas, "name": name, "namespace": namespace})
    return json.dumps({"metrics": [{"resource": name, "value": value}]})


@pytest.fixture
def configfile(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG)
    return str(path)


def test_load_config(configfile):
    config = evaluate.load_config(configfile)
    assert config["algorithm"] == "average"
    assert config["metrics"][0]["metricName"] == "requests"


@pytest.mark.parametrize("content", ["", "metrics: [", "- a\n- b\n"])
def test_load_config_invalid(tmp_path, content):
    path = tmp_path / "config.yaml"
    path.write_text(content)
    with pytest.raises(ConfigError):
        evaluate.load_config(str(path))


def test_load_config_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        evaluate.load_config(str(tmp_path / "missing.yaml"))


def test_metric_specs_require_metrics():
    with pytest.raises(ConfigError):
        evaluate.metric_specs_from_config({"metrics": []})


@pytest.mark.parametrize(
    "proposals, expected",
    [([], 4), ([6], 6), ([2, 7, 5], 7), ([0], 1), ([40], 10)],
)
def test_plan(proposals, expected):
    assert evaluate.plan(4, proposals, 1, 10) == expected


def test_plan_unbounded_above():
    assert evaluate.plan(4, [40], 1, 0) == 40


def test_evaluate_metrics_skips_failures():
    metrics = [make_metric(name="requests"), make_metric(name="latency")]

    class PartialSource(FakeMetricsSource):
        def fetch(self, metric_name, namespace, selector):
            if metric_name == "latency":
                raise MetricsSourceError("no data")
            return [5000], self.timestamp

    calculator = ReplicaCalculator(PartialSource())
    assert evaluate.evaluate_metrics(calculator, 4, metrics, make_wpa()) == [10]


def test_main_writes_target_replicas(configfile, capsys):
    source = FakeMetricsSource(values=[5000, 5000])
    evaluate.main(cpa_spec(4), configfile, metrics_source=source)

    assert json.loads(capsys.readouterr().out) == {"targetReplicas": 5}
    [(metric_name, namespace, selector)] = source.calls
    assert (metric_name, namespace, str(selector)) == ("requests", "default", "app=web")


def test_main_clamps_to_max_replicas(configfile, capsys):
    evaluate.main(cpa_spec(4), configfile, metrics_source=FakeMetricsSource(values=[100000]))
    assert json.loads(capsys.readouterr().out) == {"targetReplicas": 10}


def test_main_keeps_replicas_when_fetch_fails(configfile, capsys):
    source = FakeMetricsSource(error=MetricsSourceError("backend unavailable"))
    evaluate.main(cpa_spec(3), configfile, metrics_source=source)
    assert json.loads(capsys.readouterr().out) == {"targetReplicas": 3}


def test_main_without_config_writes_nothing(tmp_path, capsys):
    evaluate.main(cpa_spec(3), str(tmp_path / "missing.yaml"), metrics_source=FakeMetricsSource())
    assert capsys.readouterr().out == ""


def test_main_invalid_spec_writes_nothing(configfile, capsys):
    evaluate.main("{}", configfile, metrics_source=FakeMetricsSource())
    assert capsys.readouterr().out == ""


@pytest.mark.parametrize(
    "spec_raw",
    ['{"metrics": null}', '{"metrics": [{"value": null}]}', "[]"],
)
def test_main_malformed_spec_writes_nothing(configfile, capsys, spec_raw):
    evaluate.main(spec_raw, configfile, metrics_source=FakeMetricsSource())
    assert capsys.readouterr().out == ""

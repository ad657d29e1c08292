"""Sources of external metric samples."""

import math
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

import requests

from errors import MetricsSourceError
from selector import SelectorFilter


class MetricsSource(ABC):
    """Fetches the current samples of one external metric."""

    @abstractmethod
    def fetch(
        self, metric_name: str, namespace: str, selector: SelectorFilter
    ) -> tuple[list[int], datetime]:
        """Return (milli-values, sample timestamp). Raise on failure."""
        pass


def build_query(metric_name: str, namespace: str, selector: SelectorFilter) -> str:
    """Return the instant PromQL query for a metric scoped to a namespace."""
    matchers = [f'namespace="{namespace}"'] if namespace else []
    matchers.extend(selector.promql_matchers())
    return f"{metric_name}{{{', '.join(matchers)}}}"


def to_milli(raw: str) -> int:
    """Convert a Prometheus sample value to a milli-value, truncating."""
    try:
        value = Decimal(raw)
    except InvalidOperation as e:
        raise MetricsSourceError(f"invalid sample value {raw!r}") from e
    if not value.is_finite():
        raise MetricsSourceError(f"non-finite sample value {raw!r}")
    return int(value * 1000)


class PrometheusMetricsSource(MetricsSource):
    """Reads external metrics from a Prometheus instant query."""

    def __init__(self, prom_url: str, timeout: float = 10, verify=True):
        self.base_url = prom_url.rstrip("/")
        self.query_url = f"{self.base_url}/api/v1/query"
        self.timeout = timeout
        self.verify = verify

    def _query(self, promql: str) -> dict:
        try:
            r = requests.get(
                self.query_url,
                params={"query": promql},
                timeout=self.timeout,
                verify=self.verify,
            )
            r.raise_for_status()
            result_json = r.json()
        except requests.RequestException as e:
            raise MetricsSourceError(f"query {promql!r} failed: {e}") from e
        except ValueError as e:
            raise MetricsSourceError(f"query {promql!r} returned invalid JSON: {e}") from e
        if not isinstance(result_json, dict):
            raise MetricsSourceError(f"query {promql!r} returned an unexpected payload")
        return result_json

    def fetch(self, metric_name, namespace, selector):
        promql = build_query(metric_name, namespace, selector)
        result_json = self._query(promql)
        if result_json.get("status") != "success":
            raise MetricsSourceError(
                f"query {promql!r} failed: {result_json.get('errorType')}: {result_json.get('error')}"
            )

        data = result_json.get("data") or {}
        if data.get("resultType") not in (None, "vector"):
            raise MetricsSourceError(f"query {promql!r} returned a {data['resultType']}, expected a vector")

        values = []
        latest = -math.inf
        for serie in data.get("result") or []:
            ts, raw = serie.get("value", [None, None])
            if ts is None or raw is None:
                raise MetricsSourceError(f"query {promql!r} returned a sample without value")
            values.append(to_milli(raw))
            latest = max(latest, float(ts))

        if not values:
            raise MetricsSourceError(f"no metrics returned for {promql!r}")

        return values, datetime.fromtimestamp(latest, tz=timezone.utc)

"""Label selector resolution.

Turns a Kubernetes-style label selector (matchLabels + matchExpressions)
into a SelectorFilter that can be rendered either as a label selector
string or as PromQL label matchers.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from errors import SelectorError

OP_EQUALS = "="
OP_IN = "In"
OP_NOT_IN = "NotIn"
OP_EXISTS = "Exists"
OP_DOES_NOT_EXIST = "DoesNotExist"

EXPRESSION_OPERATORS = (OP_IN, OP_NOT_IN, OP_EXISTS, OP_DOES_NOT_EXIST)

_NAME_RE = re.compile(r"^([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9]$")
_DNS_SUBDOMAIN_RE = re.compile(
    r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$"
)


def validate_label_key(key: Any) -> None:
    if not isinstance(key, str) or not key:
        raise SelectorError(f"invalid label key {key!r}: must be a non-empty string")
    prefix, _, name = key.rpartition("/")
    if "/" in key:
        if not prefix or len(prefix) > 253 or not _DNS_SUBDOMAIN_RE.match(prefix):
            raise SelectorError(f"invalid label key {key!r}: prefix must be a DNS subdomain")
    if len(name) > 63 or not _NAME_RE.match(name):
        raise SelectorError(
            f"invalid label key {key!r}: name must be 63 characters or less, "
            "alphanumeric at both ends, with '-', '_' or '.' in between"
        )


def validate_label_value(key: str, value: Any) -> None:
    if not isinstance(value, str):
        raise SelectorError(f"invalid label value {value!r} for {key}: must be a string")
    if value == "":
        return
    if len(value) > 63 or not _NAME_RE.match(value):
        raise SelectorError(
            f"invalid label value {value!r} for {key}: must be 63 characters or less, "
            "alphanumeric at both ends, with '-', '_' or '.' in between"
        )


def _promql_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


_INVALID_LABEL_CHARS_RE = re.compile(r"[^a-zA-Z0-9_]")


def promql_label_name(key: str) -> str:
    """Map a Kubernetes label key to a Prometheus label name.

    Characters outside [a-zA-Z0-9_] become "_", as kube-state-metrics and
    prometheus-adapter do; "app.kubernetes.io/name" gives "app_kubernetes_io_name".
    """
    name = _INVALID_LABEL_CHARS_RE.sub("_", key)
    if name[0].isdigit():
        name = f"_{name}"
    return name


@dataclass(frozen=True)
class Requirement:
    key: str
    operator: str
    values: tuple[str, ...] = ()

    def __str__(self) -> str:
        if self.operator == OP_EXISTS:
            return self.key
        if self.operator == OP_DOES_NOT_EXIST:
            return f"!{self.key}"
        if self.operator == OP_EQUALS:
            return f"{self.key}={self.values[0]}"
        op = "in" if self.operator == OP_IN else "notin"
        return f"{self.key} {op} ({','.join(self.values)})"

    def as_promql(self) -> str:
        """Render the requirement as a PromQL label matcher."""
        label = promql_label_name(self.key)
        if self.operator == OP_EXISTS:
            return f'{label}=~".+"'
        if self.operator == OP_DOES_NOT_EXIST:
            return f'{label}=""'
        if self.operator == OP_EQUALS or (self.operator == OP_IN and len(self.values) == 1):
            return f'{label}="{_promql_escape(self.values[0])}"'
        if self.operator == OP_NOT_IN and len(self.values) == 1:
            return f'{label}!="{_promql_escape(self.values[0])}"'
        alternatives = "|".join(_promql_escape(re.escape(v)) for v in self.values)
        op = "=~" if self.operator == OP_IN else "!~"
        return f'{label}{op}"{alternatives}"'


@dataclass(frozen=True)
class SelectorFilter:
    """A resolved selector. No requirements means everything matches."""

    requirements: tuple[Requirement, ...] = ()

    def __str__(self) -> str:
        return ",".join(str(r) for r in self.requirements)

    def promql_matchers(self) -> list[str]:
        return [r.as_promql() for r in self.requirements]


class SelectorResolver(ABC):
    """Turns a raw metric selector into a SelectorFilter."""

    @abstractmethod
    def resolve(self, raw_selector: Any) -> SelectorFilter:
        """Raises SelectorError when the selector is malformed."""
        pass


def _field(obj: Any, camel: str, snake: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(camel, obj.get(snake))
    return getattr(obj, snake, None)


class KubernetesSelectorResolver(SelectorResolver):
    """Resolves selectors with the validation rules of metav1.LabelSelector.

    Accepts plain dicts (camelCase or snake_case keys) and
    kubernetes.client.V1LabelSelector objects. Requirements are sorted
    by key so that the rendered filter is stable.
    """

    def resolve(self, raw_selector: Any) -> SelectorFilter:
        if raw_selector is None:
            return SelectorFilter()
        if not isinstance(raw_selector, dict) and not hasattr(raw_selector, "match_labels"):
            raise SelectorError(f"unsupported label selector {raw_selector!r}")

        match_labels = _field(raw_selector, "matchLabels", "match_labels") or {}
        match_expressions = _field(raw_selector, "matchExpressions", "match_expressions") or []
        if not isinstance(match_labels, dict):
            raise SelectorError(f"matchLabels must be a mapping, got {type(match_labels).__name__}")
        if not isinstance(match_expressions, list):
            raise SelectorError(
                f"matchExpressions must be a list, got {type(match_expressions).__name__}"
            )

        requirements = []
        for key, value in match_labels.items():
            validate_label_key(key)
            validate_label_value(key, value)
            requirements.append(Requirement(key, OP_EQUALS, (value,)))

        for expr in match_expressions:
            requirements.append(self._expression(expr))

        requirements.sort(key=lambda r: r.key)
        return SelectorFilter(tuple(requirements))

    def _expression(self, expr: Any) -> Requirement:
        key = _field(expr, "key", "key")
        operator = _field(expr, "operator", "operator")
        values = _field(expr, "values", "values") or []

        validate_label_key(key)
        if operator not in EXPRESSION_OPERATORS:
            raise SelectorError(f"{operator!r} is not a valid label selector operator")
        if not isinstance(values, (list, tuple)):
            raise SelectorError(f"values for {key} must be a list")

        if operator in (OP_IN, OP_NOT_IN):
            if not values:
                raise SelectorError(f"for 'in', 'notin' operators, values set can't be empty ({key})")
        elif values:
            raise SelectorError(f"values set must be empty for 'exists' and 'doesnotexist' ({key})")

        for value in values:
            validate_label_value(key, value)
        return Requirement(key, operator, tuple(sorted(set(values))))

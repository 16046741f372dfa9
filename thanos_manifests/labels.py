"""Standard labels, label merging and label selectors for generated resources."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Mapping

NAME_LABEL = "app.kubernetes.io/name"
COMPONENT_LABEL = "app.kubernetes.io/component"
PART_OF_LABEL = "app.kubernetes.io/part-of"
MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
INSTANCE_LABEL = "app.kubernetes.io/instance"

DEFAULT_PART_OF_LABEL = "thanos"
DEFAULT_MANAGED_BY_LABEL = "thanos-operator"

DEFAULT_STORE_API_LABEL = "operator.thanos.io/store-api"
DEFAULT_STORE_API_VALUE = "true"

DEFAULT_QUERY_API_LABEL = "operator.thanos.io/query-api"
DEFAULT_QUERY_API_VALUE = "true"

DEFAULT_RULE_CONFIG_LABEL = "operator.thanos.io/rule-file"
DEFAULT_RULE_CONFIG_VALUE = "true"

DEFAULT_PROMETHEUS_RULE_LABEL = "operator.thanos.io/prometheus-rule"
DEFAULT_PROMETHEUS_RULE_VALUE = "true"

OWNER_LABEL = "operator.thanos.io/owner"

_DNS1123_LABEL = r"[a-z0-9]([-a-z0-9]*[a-z0-9])?"
_DNS1123_SUBDOMAIN_RE = re.compile(rf"{_DNS1123_LABEL}(\.{_DNS1123_LABEL})*")
_LABEL_VALUE_RE = re.compile(r"(([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9])?")
_QUALIFIED_NAME_RE = re.compile(r"([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9]")


def _is_dns1123_subdomain(value: str) -> bool:
    return len(value) <= 253 and _DNS1123_SUBDOMAIN_RE.fullmatch(value) is not None


def _is_valid_label_value(value: str) -> bool:
    return len(value) <= 63 and _LABEL_VALUE_RE.fullmatch(value) is not None


def _is_qualified_name(value: str) -> bool:
    prefix, sep, name = value.rpartition("/")
    if sep and not (prefix and _is_dns1123_subdomain(prefix)):
        return False
    return 0 < len(name) <= 63 and _QUALIFIED_NAME_RE.fullmatch(name) is not None


class EndpointType(str, Enum):
    """Label that selects how a StoreAPI is attached to a querier."""

    REGULAR = "operator.thanos.io/endpoint"
    STRICT = "operator.thanos.io/endpoint-strict"
    GROUP = "operator.thanos.io/endpoint-group"
    GROUP_STRICT = "operator.thanos.io/endpoint-group-strict"


_ENDPOINT_PRIORITY = (
    EndpointType.GROUP_STRICT,
    EndpointType.GROUP,
    EndpointType.STRICT,
    EndpointType.REGULAR,
)


@dataclass(frozen=True)
class _Requirement:
    key: str
    operator: str
    values: tuple[str, ...] = ()

    def matches(self, labels: Mapping[str, str]) -> bool:
        if self.operator in ("=", "in"):
            return self.key in labels and labels[self.key] in self.values
        if self.operator == "notin":
            return self.key not in labels or labels[self.key] not in self.values
        if self.operator == "exists":
            return self.key in labels
        return self.key not in labels

    def __str__(self) -> str:
        if self.operator == "=":
            return f"{self.key}={self.values[0]}"
        if self.operator in ("in", "notin"):
            return f"{self.key} {self.operator} ({','.join(self.values)})"
        if self.operator == "exists":
            return self.key
        return f"!{self.key}"


_OPERATORS = {
    "In": "in",
    "NotIn": "notin",
    "Exists": "exists",
    "DoesNotExist": "!",
}


def _requirement(key: str, operator: str, values) -> _Requirement:
    if not _is_qualified_name(key):
        raise ValueError(f"invalid label key {key!r}")
    values = tuple(sorted(values or ()))
    if operator in ("=", "in", "notin"):
        if not values:
            raise ValueError(f"values must be non-empty for operator {operator!r} on {key!r}")
        if operator == "=" and len(values) != 1:
            raise ValueError(f"exactly one value is required for equality on {key!r}")
    elif values:
        raise ValueError(f"values must be empty for operator {operator!r} on {key!r}")
    for value in values:
        if not _is_valid_label_value(value):
            raise ValueError(f"invalid label value {value!r} for key {key!r}")
    return _Requirement(key, operator, values)


@dataclass(frozen=True)
class Selector:
    """A set of label requirements, all of which must hold for a match."""

    requirements: tuple[_Requirement, ...] = ()

    @classmethod
    def from_label_selector(cls, label_selector: Mapping) -> "Selector":
        """Build a selector from a ``{"matchLabels", "matchExpressions"}`` mapping."""
        requirements = [
            _requirement(key, "=", [value])
            for key, value in (label_selector.get("matchLabels") or {}).items()
        ]
        for expr in label_selector.get("matchExpressions") or ():
            operator = expr.get("operator")
            if operator not in _OPERATORS:
                raise ValueError(f"{operator!r} is not a valid label selector operator")
            requirements.append(
                _requirement(expr.get("key", ""), _OPERATORS[operator], expr.get("values"))
            )
        requirements.sort(key=lambda r: r.key)
        return cls(tuple(requirements))

    def matches(self, labels: Mapping[str, str]) -> bool:
        """Return True when the given labels satisfy every requirement."""
        return all(req.matches(labels) for req in self.requirements)

    def __str__(self) -> str:
        return ",".join(str(req) for req in self.requirements)


def merge_labels(
    base_labels: Mapping[str, str] | None,
    merge_with_priority: Mapping[str, str] | None,
) -> dict[str, str]:
    """Return a new mapping of base labels overridden by the priority labels."""
    merged = dict(base_labels or {})
    merged.update(merge_with_priority or {})
    return merged


def build_label_selector_from(
    label_selector: Mapping | None,
    required_labels: Mapping[str, str] | None,
) -> Selector:
    """Build a selector from a label selector with the required labels added.

    The given label selector is not modified.
    """
    if label_selector is None:
        selector = {"matchLabels": dict(required_labels or {})}
    else:
        selector = {
            "matchLabels": {
                **(label_selector.get("matchLabels") or {}),
                **(required_labels or {}),
            },
            "matchExpressions": [dict(e) for e in label_selector.get("matchExpressions") or ()],
        }
    return Selector.from_label_selector(selector)


def sanitize_store_api_endpoint_labels(base_labels: dict[str, str]) -> dict[str, str]:
    """Keep only the highest-priority endpoint label; the mapping is changed in place."""
    found = next((label for label in _ENDPOINT_PRIORITY if label.value in base_labels), None)
    for label in _ENDPOINT_PRIORITY:
        if label is not found:
            base_labels.pop(label.value, None)
    return base_labels
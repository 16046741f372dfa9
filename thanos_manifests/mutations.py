"""Mutation of live resources towards their desired state."""

from __future__ import annotations

import copy
from typing import Any, Callable

Manifest = dict[str, Any]


class MutationError(Exception):
    """Raised when a resource cannot be mutated towards its desired state."""


def _child(parent: dict[str, Any], key: str) -> dict[str, Any]:
    value = parent.get(key)
    if not isinstance(value, dict):
        value = {}
        parent[key] = value
    return value


def _drop_if_empty(parent: dict[str, Any], key: str) -> None:
    if parent.get(key) == {}:
        del parent[key]


def _assign(dst: dict[str, Any], src: dict[str, Any], key: str) -> None:
    """Make ``dst[key]`` the same as ``src[key]``, absent when it is absent."""
    value = src.get(key)
    if value is None:
        dst.pop(key, None)
    else:
        dst[key] = copy.deepcopy(value)


def _merge_with_override(existing: Manifest, desired: Manifest, key: str) -> None:
    meta = _child(existing, "metadata")
    current = meta.get(key)
    wanted = (desired.get("metadata") or {}).get(key)
    if current is None and not wanted:
        _drop_if_empty(existing, "metadata")
        return
    merged = dict(current or {})
    for k, v in (wanted or {}).items():
        if v != "" or k not in merged:
            merged[k] = v
    meta[key] = merged


def _assign_meta(existing: Manifest, desired: Manifest, *keys: str) -> None:
    meta = _child(existing, "metadata")
    src = desired.get("metadata") or {}
    for key in keys:
        _assign(meta, src, key)
    _drop_if_empty(existing, "metadata")


def _mutate_config_map(existing: Manifest, desired: Manifest) -> None:
    _assign_meta(existing, desired, "annotations", "labels")
    _assign(existing, desired, "binaryData")
    _assign(existing, desired, "data")


def _mutate_secret(existing: Manifest, desired: Manifest) -> None:
    _assign_meta(existing, desired, "annotations", "labels")
    _assign(existing, desired, "data")


def _mutate_service_account(existing: Manifest, desired: Manifest) -> None:
    # Annotations are left alone: platforms inject values there and
    # changing them could spawn token secrets.
    _assign_meta(existing, desired, "labels")


def _mutate_service(existing: Manifest, desired: Manifest) -> None:
    spec = _child(existing, "spec")
    want = desired.get("spec") or {}
    _assign(spec, want, "ports")
    _assign(spec, want, "selector")
    _drop_if_empty(existing, "spec")
    _assign_meta(existing, desired, "labels")


_POD_SPEC_FIELDS = (
    "affinity",
    "containers",
    "initContainers",
    "nodeSelector",
    "tolerations",
    "topologySpreadConstraints",
    "volumes",
)


def _mutate_pod_template(spec: dict[str, Any], want_spec: dict[str, Any]) -> None:
    template = _child(spec, "template")
    want = want_spec.get("template") or {}

    meta = _child(template, "metadata")
    want_meta = want.get("metadata") or {}
    _assign(meta, want_meta, "annotations")
    _assign(meta, want_meta, "labels")
    _drop_if_empty(template, "metadata")

    pod_spec = _child(template, "spec")
    want_pod_spec = want.get("spec") or {}
    for key in _POD_SPEC_FIELDS:
        _assign(pod_spec, want_pod_spec, key)
    _drop_if_empty(template, "spec")
    _drop_if_empty(spec, "template")


def _is_new(obj: Manifest) -> bool:
    return not (obj.get("metadata") or {}).get("creationTimestamp")


def _mutate_workload(existing: Manifest, desired: Manifest, *extra: str) -> None:
    spec = _child(existing, "spec")
    want = desired.get("spec") or {}
    # The selector is immutable, so it is only set on objects about to be created.
    if _is_new(existing):
        _assign(spec, want, "selector")
    _assign(spec, want, "replicas")
    for key in extra:
        _assign(spec, want, key)
    _mutate_pod_template(spec, want)
    _drop_if_empty(existing, "spec")


def _mutate_deployment(existing: Manifest, desired: Manifest) -> None:
    _mutate_workload(existing, desired, "strategy")


def _mutate_stateful_set(existing: Manifest, desired: Manifest) -> None:
    _mutate_workload(existing, desired)


def _mutate_service_monitor(existing: Manifest, desired: Manifest) -> None:
    _assign_meta(existing, desired, "labels", "annotations")
    spec = _child(existing, "spec")
    want = desired.get("spec") or {}
    selector = _child(spec, "selector")
    _assign(selector, want.get("selector") or {}, "matchLabels")
    _drop_if_empty(spec, "selector")
    _assign(spec, want, "namespaceSelector")
    _assign(spec, want, "endpoints")
    _drop_if_empty(existing, "spec")


def _mutate_pod_disruption_budget(existing: Manifest, desired: Manifest) -> None:
    _assign_meta(existing, desired, "annotations", "labels")
    _assign(existing, desired, "spec")


_MUTATORS: dict[str, Callable[[Manifest, Manifest], None]] = {
    "ConfigMap": _mutate_config_map,
    "Secret": _mutate_secret,
    "Service": _mutate_service,
    "ServiceAccount": _mutate_service_account,
    "Deployment": _mutate_deployment,
    "StatefulSet": _mutate_stateful_set,
    "ServiceMonitor": _mutate_service_monitor,
    "PodDisruptionBudget": _mutate_pod_disruption_budget,
}


def mutate_func_for(existing: Manifest, desired: Manifest) -> Callable[[], None]:
    """Return a function that mutates ``existing`` in place towards ``desired``.

    Supported kinds are ConfigMap, Secret, Service, ServiceAccount, Deployment,
    StatefulSet, ServiceMonitor and PodDisruptionBudget; any other kind makes
    the returned function raise MutationError.
    """

    def mutate() -> None:
        _merge_with_override(existing, desired, "annotations")
        _merge_with_override(existing, desired, "labels")

        owner_refs = (desired.get("metadata") or {}).get("ownerReferences")
        if owner_refs:
            _child(existing, "metadata")["ownerReferences"] = copy.deepcopy(owner_refs)

        kind = existing.get("kind")
        mutator = _MUTATORS.get(kind)
        if mutator is None:
            raise MutationError(f"missing mutate implementation for resource type {kind}")
        mutator(existing, desired)

    return mutate
"""PodDisruptionBudget manifests."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping


@dataclass
class PodDisruptionBudgetOptions:
    """Limits for a PodDisruptionBudget; max_unavailable defaults to 1."""

    max_unavailable: int | None = None
    min_available: int | None = None


def new_pod_disruption_budget(
    name: str,
    namespace: str,
    selector_labels: Mapping[str, str] | None,
    object_meta_labels: Mapping[str, str] | None,
    annotations: Mapping[str, str] | None,
    opts: PodDisruptionBudgetOptions,
) -> dict[str, Any]:
    """Return a PodDisruptionBudget manifest for the selected pods."""
    metadata: dict[str, Any] = {"name": name, "namespace": namespace}
    if object_meta_labels is not None:
        metadata["labels"] = object_meta_labels
    if annotations is not None:
        metadata["annotations"] = annotations

    selector: dict[str, Any] = {}
    if selector_labels is not None:
        selector["matchLabels"] = selector_labels

    spec: dict[str, Any] = {"selector": selector}
    if opts.min_available is not None:
        spec["minAvailable"] = opts.min_available
    spec["maxUnavailable"] = 1 if opts.max_unavailable is None else opts.max_unavailable

    return {
        "apiVersion": "policy/v1",
        "kind": "PodDisruptionBudget",
        "metadata": metadata,
        "spec": spec,
    }
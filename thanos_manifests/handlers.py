"""Applying, deleting and pruning generated resources through a cluster client."""

from __future__ import annotations

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Protocol

from .mutations import mutate_func_for

Manifest = dict[str, Any]
GroupVersionKind = tuple[str, str]

SERVICE_NAME_LABEL = "kubernetes.io/service-name"

_CLUSTER_SCOPED_KINDS = frozenset(
    {
        "APIService",
        "ClusterRole",
        "ClusterRoleBinding",
        "CustomResourceDefinition",
        "MutatingWebhookConfiguration",
        "Namespace",
        "Node",
        "PersistentVolume",
        "PriorityClass",
        "StorageClass",
        "ValidatingWebhookConfiguration",
    }
)

_PRUNABLE_KINDS = (
    ("service_account", "ServiceAccount"),
    ("service", "Service"),
    ("stateful_set", "StatefulSet"),
    ("deployment", "Deployment"),
    ("config_map", "ConfigMap"),
    ("secret", "Secret"),
    ("pod_disruption_budget", "PodDisruptionBudget"),
    ("service_monitor", "ServiceMonitor"),
)


class NotFoundError(LookupError):
    """Raised when a resource does not exist."""


class ClusterClient(Protocol):
    def get(self, kind: str, namespace: str, name: str) -> Manifest: ...
    def list(self, kind: str, namespace: str | None = None,
             match_labels: Mapping[str, str] | None = None) -> list[Manifest]: ...
    def create(self, obj: Manifest) -> None: ...
    def update(self, obj: Manifest) -> None: ...
    def delete(self, obj: Manifest) -> None: ...
    def is_namespaced(self, obj: Manifest) -> bool: ...


def _meta(obj: Manifest) -> dict[str, Any]:
    return obj.get("metadata") or {}


def _key(obj: Manifest) -> tuple[str, str, str]:
    meta = _meta(obj)
    return obj.get("kind", ""), meta.get("namespace", ""), meta.get("name", "")


def _describe(obj: Manifest) -> str:
    kind, namespace, name = _key(obj)
    return f"name={name} namespace={namespace} kind={kind}"


def _group(api_version: str) -> str:
    group, sep, _ = api_version.rpartition("/")
    return group if sep else ""


class InMemoryClient:
    """A cluster client that keeps resources in memory."""

    def __init__(self, *objects: Manifest) -> None:
        self._objects: dict[tuple[str, str, str], Manifest] = {}
        for obj in objects:
            self._objects[_key(obj)] = copy.deepcopy(obj)

    def get(self, kind: str, namespace: str, name: str) -> Manifest:
        """Return a copy of the stored resource or raise NotFoundError."""
        try:
            return copy.deepcopy(self._objects[(kind, namespace, name)])
        except KeyError:
            raise NotFoundError(f'{kind} "{name}" not found in namespace "{namespace}"') from None

    def list(self, kind: str, namespace: str | None = None,
             match_labels: Mapping[str, str] | None = None) -> list[Manifest]:
        """Return copies of resources of a kind, filtered by namespace and labels."""
        wanted = dict(match_labels or {})
        found = []
        for (obj_kind, obj_ns, _), obj in sorted(self._objects.items()):
            if obj_kind != kind or (namespace is not None and obj_ns != namespace):
                continue
            labels = _meta(obj).get("labels") or {}
            if all(labels.get(k) == v for k, v in wanted.items()):
                found.append(copy.deepcopy(obj))
        return found

    def create(self, obj: Manifest) -> None:
        """Store a new resource; raise ValueError if it already exists."""
        key = _key(obj)
        if key in self._objects:
            raise ValueError(f'{key[0]} "{key[2]}" already exists')
        meta = obj.setdefault("metadata", {})
        meta.setdefault(
            "creationTimestamp",
            datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        )
        self._objects[key] = copy.deepcopy(obj)

    def update(self, obj: Manifest) -> None:
        """Replace a stored resource; raise NotFoundError if it is missing."""
        key = _key(obj)
        if key not in self._objects:
            raise NotFoundError(f'{key[0]} "{key[2]}" not found in namespace "{key[1]}"')
        self._objects[key] = copy.deepcopy(obj)

    def delete(self, obj: Manifest) -> None:
        """Remove a stored resource; raise NotFoundError if it is missing."""
        key = _key(obj)
        if self._objects.pop(key, None) is None:
            raise NotFoundError(f'{key[0]} "{key[2]}" not found in namespace "{key[1]}"')

    def is_namespaced(self, obj: Manifest) -> bool:
        """Return True unless the resource kind is cluster scoped."""
        return obj.get("kind") not in _CLUSTER_SCOPED_KINDS


def _set_controller_reference(owner: Manifest, obj: Manifest) -> None:
    api_version = owner.get("apiVersion")
    kind = owner.get("kind")
    if not api_version or not kind:
        raise ValueError("owner has no apiVersion or kind")
    owner_meta = _meta(owner)
    obj_meta = obj.setdefault("metadata", {})
    owner_ns = owner_meta.get("namespace", "")
    if owner_ns and owner_ns != obj_meta.get("namespace", ""):
        raise ValueError("cross-namespace owner references are disallowed")

    ref = {
        "apiVersion": api_version,
        "kind": kind,
        "name": owner_meta.get("name", ""),
        "uid": owner_meta.get("uid", ""),
        "controller": True,
        "blockOwnerDeletion": True,
    }

    def same(other: Mapping[str, Any]) -> bool:
        return (
            _group(other.get("apiVersion", "")) == _group(api_version)
            and other.get("kind") == kind
            and other.get("name") == ref["name"]
        )

    refs = obj_meta.get("ownerReferences") or []
    for existing in refs:
        if existing.get("controller") and not same(existing):
            raise ValueError(
                f"object is already owned by another {existing.get('kind')} controller "
                f"{existing.get('name')}"
            )
    obj_meta["ownerReferences"] = [r for r in refs if not same(r)] + [ref]


class Handler:
    """Creates, updates and deletes resources, counting failures."""

    def __init__(self, client: ClusterClient, logger: logging.Logger | None = None) -> None:
        self.client = client
        self.logger = logger or logging.getLogger(__name__)
        self._gated: frozenset[GroupVersionKind] = frozenset()

    def set_feature_gates(self, gvks: Iterable[GroupVersionKind]) -> None:
        """Skip every action on resources of the given (apiVersion, kind) pairs."""
        self._gated = frozenset(gvks)

    def is_feature_gated(self, obj: Manifest) -> bool:
        """Return True if the resource's (apiVersion, kind) is gated."""
        return (obj.get("apiVersion", ""), obj.get("kind", "")) in self._gated

    def create_or_update(self, namespace: str, owner: Manifest, objs: Iterable[Manifest]) -> int:
        """Create or update each resource, owned by ``owner``; return the error count."""
        errors = 0
        for obj in objs:
            desc = _describe(obj)
            if self.is_feature_gated(obj):
                self.logger.debug("resource is feature gated, skipping: %s", desc)
                continue

            if self.client.is_namespaced(obj):
                obj.setdefault("metadata", {})["namespace"] = namespace
                try:
                    _set_controller_reference(owner, obj)
                except ValueError:
                    self.logger.exception(
                        "failed to set controller owner reference to resource: %s", desc)
                    errors += 1
                    continue

            try:
                operation = self._create_or_update(obj)
            except Exception:
                self.logger.exception("failed to create or update resource: %s", _describe(obj))
                errors += 1
                continue
            self.logger.debug("resource configured: %s operation=%s", _describe(obj), operation)
        return errors

    def _create_or_update(self, obj: Manifest) -> str:
        desired = copy.deepcopy(obj)
        kind, namespace, name = _key(obj)
        try:
            current = self.client.get(kind, namespace, name)
        except NotFoundError:
            mutate_func_for(obj, desired)()
            self.client.create(obj)
            return "created"

        before = copy.deepcopy(current)
        mutate_func_for(current, desired)()
        if current == before:
            return "unchanged"
        self.client.update(current)
        return "updated"

    def delete_resource(self, objs: Iterable[Manifest]) -> int:
        """Delete the resources that exist; return the error count."""
        errors = 0
        for obj in objs:
            desc = _describe(obj)
            if self.is_feature_gated(obj):
                self.logger.debug("resource is feature gated, skipping: %s", desc)
                continue
            try:
                self.client.get(*_key(obj))
            except NotFoundError:
                continue
            except Exception:
                self.logger.exception("failed to get resource in delete_resource: %s", desc)
                errors += 1
                continue
            if not self._delete(obj):
                errors += 1
        return errors

    def _delete(self, obj: Manifest) -> bool:
        desc = _describe(obj)
        try:
            self.client.delete(obj)
        except NotFoundError:
            pass
        except Exception:
            self.logger.exception("failed to delete resource: %s", desc)
            return False
        self.logger.debug("resource deleted: %s", desc)
        return True

    def get_endpoint_slices(self, service_name: str, namespace: str) -> list[Manifest]:
        """Return the EndpointSlices of a service in a namespace."""
        try:
            return self.client.list(
                "EndpointSlice", namespace, {SERVICE_NAME_LABEL: service_name})
        except Exception as err:
            raise RuntimeError(
                f"failed to list endpoint slices for service {service_name} "
                f"in namespace {namespace}: {err}"
            ) from err

    def new_resource_pruner(self) -> "ResourcePruner":
        """Return a pruner that shares this handler's client and gates."""
        return ResourcePruner(self)


class ResourcePruner:
    """Deletes resources of the enabled kinds that are not to be kept."""

    def __init__(self, handler: Handler) -> None:
        self._handler = handler
        self._enabled: set[str] = set()

    def _enable(self, kind: str) -> "ResourcePruner":
        self._enabled.add(kind)
        return self

    def with_config_map(self) -> "ResourcePruner":
        return self._enable("ConfigMap")

    def with_secret(self) -> "ResourcePruner":
        return self._enable("Secret")

    def with_service(self) -> "ResourcePruner":
        return self._enable("Service")

    def with_stateful_set(self) -> "ResourcePruner":
        return self._enable("StatefulSet")

    def with_deployment(self) -> "ResourcePruner":
        return self._enable("Deployment")

    def with_service_monitor(self) -> "ResourcePruner":
        return self._enable("ServiceMonitor")

    def with_service_account(self) -> "ResourcePruner":
        return self._enable("ServiceAccount")

    def with_pod_disruption_budget(self) -> "ResourcePruner":
        return self._enable("PodDisruptionBudget")

    def prune(self, keep_resource_names: Iterable[str], namespace: str | None = None,
              match_labels: Mapping[str, str] | None = None) -> int:
        """Delete listed resources whose names are not kept; return the error count."""
        keep = set(keep_resource_names)
        handler = self._handler
        errors = 0
        for _, kind in _PRUNABLE_KINDS:
            if kind not in self._enabled:
                continue
            try:
                items = handler.client.list(kind, namespace, match_labels)
            except Exception:
                handler.logger.exception("failed to list %s resources", kind)
                errors += 1
                continue
            for item in items:
                if _meta(item).get("name") not in keep and not handler._delete(item):
                    errors += 1
        return errors
"""Manifests for the Thanos Query component."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

from .labels import (
    COMPONENT_LABEL,
    DEFAULT_MANAGED_BY_LABEL,
    DEFAULT_PART_OF_LABEL,
    DEFAULT_QUERY_API_LABEL,
    DEFAULT_QUERY_API_VALUE,
    INSTANCE_LABEL,
    MANAGED_BY_LABEL,
    NAME_LABEL,
    OWNER_LABEL,
    PART_OF_LABEL,
    EndpointType,
    merge_labels,
)
from .options import (
    Options,
    augment_with_options,
    validate_and_sanitize_name_to_valid_label_value,
    validate_and_sanitize_resource_name,
)

Manifest = dict[str, Any]

NAME = "thanos-query"
COMPONENT_NAME = "query-layer"

GRPC_PORT = 10901
GRPC_PORT_NAME = "grpc"

HTTP_PORT = 9090
HTTP_PORT_NAME = "http"


@dataclass
class Endpoint:
    """A StoreAPI service that the querier connects to."""

    service_name: str = ""
    namespace: str = ""
    type: EndpointType = EndpointType.REGULAR
    port: int = 0

    def to_flag(self) -> str:
        """Return the querier flag that attaches this endpoint."""
        host = f"{self.service_name}.{self.namespace}.svc.cluster.local"
        if self.type is EndpointType.REGULAR:
            return f"--endpoint=dnssrv+_grpc._tcp.{host}"
        if self.type is EndpointType.STRICT:
            return f"--endpoint-strict=dnssrv+_grpc._tcp.{host}"
        if self.type is EndpointType.GROUP:
            return f"--endpoint-group={host}:{self.port}"
        if self.type is EndpointType.GROUP_STRICT:
            return f"--endpoint-group-strict={host}:{self.port}"
        raise ValueError(f"unknown endpoint type {self.type!r}")


@dataclass
class QueryOptions(Options):
    """Options for building Thanos Query resources."""

    replica_labels: list[str] = field(default_factory=list)
    timeout: str = ""
    lookback_delta: str = ""
    max_concurrent: int = 0
    endpoints: list[Endpoint] = field(default_factory=list)

    def get_generated_resource_name(self) -> str:
        """Return the name shared by the generated resources."""
        return validate_and_sanitize_resource_name(f"{NAME}-{self.owner}")

    def get_selector_labels(self) -> dict[str, str]:
        """Return the labels that select the query resources of this owner."""
        labels = get_required_labels()
        labels[INSTANCE_LABEL] = validate_and_sanitize_name_to_valid_label_value(
            self.get_generated_resource_name()
        )
        labels[OWNER_LABEL] = validate_and_sanitize_name_to_valid_label_value(self.owner)
        return labels


def get_required_labels() -> dict[str, str]:
    """Return the labels present on every query resource."""
    return {
        NAME_LABEL: NAME,
        COMPONENT_LABEL: COMPONENT_NAME,
        PART_OF_LABEL: DEFAULT_PART_OF_LABEL,
        MANAGED_BY_LABEL: DEFAULT_MANAGED_BY_LABEL,
        DEFAULT_QUERY_API_LABEL: DEFAULT_QUERY_API_VALUE,
    }


def get_labels(opts: QueryOptions) -> dict[str, str]:
    """Return the user labels overridden by the selector labels."""
    return merge_labels(opts.labels, opts.get_selector_labels())


def _prune_empty_args(args: list[str]) -> list[str]:
    """Drop empty arguments and flags given an empty value."""
    return [arg for arg in args if arg and not arg.endswith("=")]


def query_args(opts: QueryOptions) -> list[str]:
    """Return the command-line arguments of the query container."""
    args = ["query", *opts.to_flags()]
    args += [
        f"--grpc-address=0.0.0.0:{GRPC_PORT}",
        f"--http-address=0.0.0.0:{HTTP_PORT}",
        "--web.prefix-header=X-Forwarded-Prefix",
        f"--query.timeout={opts.timeout}",
        f"--query.lookback-delta={opts.lookback_delta}",
        "--query.auto-downsampling",
        "--grpc.proxy-strategy=eager",
        "--query.promql-engine=thanos",
        f"--query.max-concurrent={opts.max_concurrent}",
    ]
    args += [f"--query.replica-label={label}" for label in opts.replica_labels]
    args += [endpoint.to_flag() for endpoint in opts.endpoints]
    args += opts.additional.args
    return _prune_empty_args(args)


def _metadata(name: str, namespace: str, labels: dict[str, str],
              annotations: dict[str, str] | None) -> dict[str, Any]:
    meta: dict[str, Any] = {"name": name, "namespace": namespace, "labels": dict(labels)}
    if annotations is not None:
        meta["annotations"] = dict(annotations)
    return meta


def _query_container(opts: QueryOptions) -> dict[str, Any]:
    return {
        "name": NAME,
        "image": opts.get_container_image(),
        "imagePullPolicy": "IfNotPresent",
        "securityContext": {
            "runAsNonRoot": True,
            "allowPrivilegeEscalation": False,
            "capabilities": {"drop": ["ALL"]},
        },
        "readinessProbe": {
            "httpGet": {"path": "/-/ready", "port": HTTP_PORT, "scheme": "HTTP"},
            "initialDelaySeconds": 30,
            "timeoutSeconds": 1,
            "periodSeconds": 5,
            "successThreshold": 1,
            "failureThreshold": 20,
        },
        "livenessProbe": {
            "httpGet": {"path": "/-/healthy", "port": HTTP_PORT},
            "initialDelaySeconds": 30,
            "timeoutSeconds": 1,
            "periodSeconds": 30,
            "successThreshold": 1,
            "failureThreshold": 4,
        },
        "ports": [
            {"containerPort": GRPC_PORT, "name": GRPC_PORT_NAME},
            {"containerPort": HTTP_PORT, "name": HTTP_PORT_NAME},
        ],
        "terminationMessagePolicy": "FallbackToLogsOnError",
        "terminationMessagePath": "/dev/termination-log",
        "args": query_args(opts),
    }


def _new_query_deployment(opts: QueryOptions, selector_labels: dict[str, str],
                          object_meta_labels: dict[str, str]) -> Manifest:
    name = opts.get_generated_resource_name()
    affinity = {
        "podAntiAffinity": {
            "preferredDuringSchedulingIgnoredDuringExecution": [
                {
                    "weight": 100,
                    "podAffinityTerm": {
                        "labelSelector": {
                            "matchExpressions": [
                                {"key": NAME_LABEL, "operator": "In", "values": [name]}
                            ]
                        },
                        "namespaces": [opts.namespace],
                        "topologyKey": "kubernetes.io/hostname",
                    },
                }
            ]
        }
    }
    deployment: Manifest = {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": _metadata(name, opts.namespace, object_meta_labels, opts.annotations),
        "spec": {
            "replicas": opts.replicas,
            "selector": {"matchLabels": dict(selector_labels)},
            "template": {
                "metadata": {"labels": dict(object_meta_labels)},
                "spec": {
                    "affinity": affinity,
                    "securityContext": {},
                    "containers": [_query_container(opts)],
                    "serviceAccountName": name,
                },
            },
        },
    }
    augment_with_options(deployment, copy.deepcopy(opts))
    return deployment


def new_query_deployment(opts: QueryOptions) -> Manifest:
    """Return the Deployment manifest for Thanos Query."""
    return _new_query_deployment(opts, opts.get_selector_labels(), get_labels(opts))


def _new_query_service(opts: QueryOptions, selector_labels: dict[str, str],
                       object_meta_labels: dict[str, str]) -> Manifest:
    ports = [
        {"name": GRPC_PORT_NAME, "port": GRPC_PORT, "targetPort": GRPC_PORT},
        {"name": HTTP_PORT_NAME, "port": HTTP_PORT, "targetPort": HTTP_PORT},
        *copy.deepcopy(opts.additional.service_ports),
    ]
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": _metadata(
            opts.get_generated_resource_name(), opts.namespace, object_meta_labels,
            opts.annotations,
        ),
        "spec": {
            "selector": dict(selector_labels),
            "ports": ports,
            "clusterIP": "None",
        },
    }


def new_query_service(opts: QueryOptions) -> Manifest:
    """Return the headless Service manifest for Thanos Query."""
    selector_labels = opts.get_selector_labels()
    return _new_query_service(opts, selector_labels, merge_labels(opts.labels, selector_labels))
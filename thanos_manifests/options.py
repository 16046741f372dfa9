"""Common build options for Thanos component manifests."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any, Protocol

from .labels import INSTANCE_LABEL, _is_dns1123_subdomain, _is_valid_label_value
from .pdb import PodDisruptionBudgetOptions

DEFAULT_THANOS_IMAGE = "quay.io/thanos/thanos"
DEFAULT_THANOS_VERSION = "v0.35.1"

DEFAULT_LOG_LEVEL = "info"
DEFAULT_LOG_FORMAT = "logfmt"

Duration = str


class _HasSelectorLabels(Protocol):
    def get_selector_labels(self) -> dict[str, str]: ...


def get_label_selector_for_owner(opts: _HasSelectorLabels | None) -> dict[str, str] | None:
    """Return the selector labels of ``opts`` without the instance label."""
    if opts is None:
        return None
    return {k: v for k, v in opts.get_selector_labels().items() if k != INSTANCE_LABEL}


@dataclass
class Additional:
    """Extra arguments and pod settings added to a component."""

    args: list[str] = field(default_factory=list)
    containers: list[dict[str, Any]] = field(default_factory=list)
    volumes: list[dict[str, Any]] = field(default_factory=list)
    volume_mounts: list[dict[str, Any]] = field(default_factory=list)
    ports: list[dict[str, Any]] = field(default_factory=list)
    env: list[dict[str, Any]] = field(default_factory=list)
    service_ports: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class Options:
    """Options shared by every component builder."""

    owner: str = ""
    namespace: str = ""
    replicas: int = 0
    labels: dict[str, str] | None = None
    annotations: dict[str, str] | None = None
    image: str | None = None
    version: str | None = None
    resource_requirements: dict[str, Any] | None = None
    log_level: str | None = None
    log_format: str | None = None
    pod_disruption_config: PodDisruptionBudgetOptions | None = None
    additional: Additional = field(default_factory=Additional)

    def to_flags(self) -> list[str]:
        """Return the logging flags, falling back to defaults."""
        level = self.log_level or DEFAULT_LOG_LEVEL
        fmt = self.log_format or DEFAULT_LOG_FORMAT
        return [f"--log.level={level}", f"--log.format={fmt}"]

    def get_container_image(self) -> str:
        """Return ``image:version``, falling back to defaults."""
        image = self.image or DEFAULT_THANOS_IMAGE
        version = self.version or DEFAULT_THANOS_VERSION
        return f"{image}:{version}"


def _sanitize_to_length(value: str, length: int) -> str:
    for old, new in (
        ("*", "-"),
        ("/", "-"),
        (".", "-"),
        ("[", ""),
        ("]", ""),
        (":", "-"),
        ("_", "-"),
        (" ", "-"),
        ("\n", ""),
        ('"', ""),
        ("'", ""),
    ):
        value = value.replace(old, new)
    if len(value) > length:
        digest = hashlib.md5(value.encode()).hexdigest()
        value = f"{value[:31]}-{digest}"[:length]
    return value.replace(".", "-").lower()


def validate_and_sanitize_resource_name(name: str) -> str:
    """Return ``name`` if it is a DNS-1123 subdomain, otherwise a sanitized form."""
    if _is_dns1123_subdomain(name):
        return name
    return _sanitize_to_length(name, 63)


def validate_and_sanitize_name_to_valid_label_value(value: str) -> str:
    """Return ``value`` if it is a valid label value, otherwise a sanitized form."""
    if _is_valid_label_value(value):
        return value
    return _sanitize_to_length(value, 63)


def sanitize_name(name: str) -> str:
    """Replace '.' and '_' with '-' and shorten names over 63 characters with a hash."""
    name = name.replace(".", "-").replace("_", "-")
    if len(name) > 63:
        digest = hashlib.md5(name.encode()).digest()[:8].hex()
        name = f"{name[:46]}-{digest}"
    return name


def augment_with_options(obj: dict[str, Any], opts: Options) -> None:
    """Apply image, resources and additional settings to a Deployment or StatefulSet.

    Other kinds are left untouched.
    """
    if obj.get("kind") not in ("Deployment", "StatefulSet"):
        return
    pod_spec = obj["spec"]["template"]["spec"]
    containers = pod_spec["containers"]
    main = containers[0]
    main["image"] = opts.get_container_image()

    if opts.resource_requirements is not None:
        main["resources"] = opts.resource_requirements

    extra = opts.additional
    if extra.volume_mounts:
        main.setdefault("volumeMounts", []).extend(extra.volume_mounts)
    if extra.containers:
        containers.extend(extra.containers)
    if extra.volumes:
        pod_spec.setdefault("volumes", []).extend(extra.volumes)
    if extra.ports:
        main.setdefault("ports", []).extend(extra.ports)
    if extra.env:
        main.setdefault("env", []).extend(extra.env)


@dataclass
class RelabelConfig:
    """A single relabel rule rendered as YAML."""

    action: str = ""
    source_label: str = ""
    target_label: str = ""
    modulus: int = 0
    regex: str = ""

    def __str__(self) -> str:
        if self.action == "hashmod":
            return (
                "\n- action: hashmod"
                f'\n  source_labels: ["{self.source_label}"]'
                f"\n  target_label: {self.target_label}"
                f"\n  modulus: {self.modulus}"
            )
        if not self.target_label:
            return (
                f"\n- action: {self.action}"
                f'\n  source_labels: ["{self.source_label}"]'
                f"\n  regex: {self.regex}"
            )
        return (
            f"\n- action: {self.action}"
            f'\n  source_labels: ["{self.source_label}"]'
            f"\n  target_label: {self.target_label}"
            f"\n  regex: {self.regex}"
        )


class RelabelConfigs(list):
    """A list of relabel rules."""

    def __str__(self) -> str:
        return "".join(str(r) for r in self)

    def to_flags(self) -> str:
        """Return the selector relabel flag carrying these rules."""
        return f"--selector.relabel-config={self}"


@dataclass
class InMemoryCacheConfig:
    """In-memory cache settings rendered as YAML."""

    max_size: str = ""
    max_item_size: str = ""

    def __str__(self) -> str:
        text = "type: IN-MEMORY\nconfig:\n"
        if self.max_size:
            text += f"  max_size: {self.max_size}\n"
        if self.max_item_size:
            text += f"  max_item_size: {self.max_item_size}\n"
        return text


@dataclass
class CacheConfig:
    """Cache configuration given inline or by a secret key reference."""

    in_memory_cache_config: InMemoryCacheConfig | None = None
    from_secret: dict[str, Any] | None = None
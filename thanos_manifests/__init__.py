"""Build Thanos Query manifests and reconcile Kubernetes objects as plain dictionaries."""

__version__ = "0.1.0"
[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "thanos-manifests"
version = "0.1.0"
description = "Build and reconcile Kubernetes manifests for Thanos components as plain Python data."
requires-python = ">=3.10"
dependencies = []
keywords = ["thanos", "kubernetes", "manifests", "operator", "prometheus"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Clustering",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["thanos_manifests"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

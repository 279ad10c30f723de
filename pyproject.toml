[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "infraoffload"
version = "0.1.0"
description = "Stores, P4 table programming helpers and configuration for offloading Kubernetes pod and service networking"
requires-python = ">=3.10"
keywords = ["kubernetes", "p4", "p4runtime", "cni", "load-balancing", "networking"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
]
dependencies = [
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["infraoffload"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

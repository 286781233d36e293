[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "fivegsim"
version = "0.1.0"
description = "Building blocks of a small 5G core simulator: SMF, UDM and UPF logic, UE configuration, pcap capture and sequence-diagram observability"
requires-python = ">=3.10"
dependencies = [
    "pyyaml",
]
keywords = [
    "5g",
    "core-network",
    "simulator",
    "smf",
    "udm",
    "upf",
    "gtp-u",
    "pcap",
    "mermaid",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Intended Audience :: Telecommunications Industry",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications :: Telephony",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["fivegsim"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

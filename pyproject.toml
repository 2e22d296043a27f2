[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "a2akit"
version = "0.1.0"
description = "Agent-to-agent protocol building blocks: JSON-RPC 2.0 wire format, framing, connections and servers"
requires-python = ">=3.10"
dependencies = []
keywords = ["a2a", "agent", "json-rpc", "jsonrpc2", "rpc", "protocol"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["a2akit"]

[tool.pytest.ini_options]
addopts = "-ra"

[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "netstack"
version = "0.1.0"
description = "A user-space TCP and UDP protocol toolkit: segment and datagram codecs, checksums, the TCP state machine, connections and Fast Open cookies"
requires-python = ">=3.10"
dependencies = [
    "cryptography",
]
keywords = ["tcp", "udp", "networking", "protocol", "checksum", "state-machine", "fast-open"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
    "Topic :: Internet",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["netstack"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true

[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "nostrelay"
version = "0.9.0"
description = "Building blocks for a Nostr relay: subscription filters, client message parsing, metrics and a small web front end"
requires-python = ">=3.10"
keywords = ["nostr", "relay", "subscription", "metrics", "aiohttp"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
]
dependencies = [
    "aiohttp",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
nostrelay = "nostrelay.web:main"

[tool.hatch.build.targets.wheel]
packages = ["nostrelay"]

[tool.pytest.ini_options]
addopts = "-ra"

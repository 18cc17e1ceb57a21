[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "foxy"
version = "0.2.16"
description = "A configuration-driven and extensible HTTP proxy library"
requires-python = ">=3.10"
keywords = ["http", "proxy", "extensible", "configurable", "routing"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Framework :: aiohttp",
    "Topic :: Internet :: Proxy Servers",
    "Topic :: Internet :: WWW/HTTP",
]
dependencies = [
    "aiohttp",
    "multidict",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["foxy"]

[tool.pytest.ini_options]
addopts = "-ra"

[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sentrylite"
version = "0.1.0"
description = "DSN, auth header and project id types, per-request hub binding, HTTP request middleware and tracing integration for an error-reporting client"
requires-python = ">=3.10"
dependencies = []
keywords = ["dsn", "auth", "error-reporting", "tracing", "breadcrumbs", "middleware", "spans"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["sentrylite"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

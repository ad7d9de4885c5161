[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "fleetsim"
version = "0.1.0"
description = "Autonomous vehicle fleet service and car simulator: vehicle registry, nearest-vehicle dispatch and simulated battery-powered vehicles."
requires-python = ">=3.10"
keywords = [
    "fleet",
    "autonomous-vehicles",
    "simulation",
    "dispatch",
    "telemetry",
    "routing",
]
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
    "Framework :: Flask",
    "Topic :: System :: Distributed Computing",
    "Topic :: Scientific/Engineering :: GIS",
]
dependencies = [
    "requests>=2.28",
    "flask>=2.2",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
    "responses>=0.23",
]

[project.scripts]
fleetsim-fleet-service = "fleetsim.fleet.server:main"
fleetsim-car-simulator = "fleetsim.simulator.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["fleetsim"]

[tool.hatch.build.targets.sdist]
include = ["fleetsim", "tests", "pyproject.toml", "README.md"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
ignore_missing_imports = true

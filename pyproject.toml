[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "colmena"
version = "0.5.0"
description = "Asyncio building blocks for NixOS deployments: goals, limits, options, Nix expressions, job monitoring, flakes and nix-eval-jobs evaluation"
requires-python = ">=3.10"
dependencies = [
    "psutil",
]
keywords = ["nix", "nixos", "deployment", "flakes", "nix-eval-jobs", "asyncio"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Framework :: AsyncIO",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["colmena"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true

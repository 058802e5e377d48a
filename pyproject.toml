[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "agsandbox"
version = "0.1.0"
description = "Building blocks for launching rootless podman sandboxes for coding agents: podman arguments, SSH agent, secrets and sidecars"
requires-python = ">=3.10"
dependencies = []
keywords = ["sandbox", "podman", "container", "agent", "ssh-agent", "secrets"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["agsandbox"]

[tool.hatch.build.targets.sdist]
include = ["agsandbox", "tests", "README.md"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP", "SIM"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
check_untyped_defs = true

[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "chatmesh"
version = "0.1.0"
description = "Building blocks for a multi-site chat system: message models, subject naming, stream layouts and service handlers."
requires-python = ">=3.10"
keywords = ["chat", "messaging", "multi-site", "fanout", "rooms", "subjects"]
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
    "Topic :: Communications :: Chat",
    "Topic :: Software Development :: Libraries :: Python Modules",
]
dependencies = [
    "pymongo",
    "pynacl",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["chatmesh"]

[tool.hatch.build.targets.sdist]
include = ["chatmesh", "tests"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true

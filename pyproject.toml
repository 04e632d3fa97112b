[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "flashq"
version = "0.1.0"
description = "An embeddable append-only record queue with topics, consumer groups and in-memory or file-backed storage"
requires-python = ">=3.10"
dependencies = [
    "portalocker",
    "psutil",
]
keywords = ["queue", "message-queue", "log", "consumer-groups", "write-ahead-log"]
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
    "Topic :: System :: Distributed Computing",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["flashq"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true

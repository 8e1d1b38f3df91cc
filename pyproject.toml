[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "minidb"
version = "0.1.0"
description = "Storage engine building blocks: paged disk file, buffer pool, row locking, B+ tree node pages and catalog metadata records"
requires-python = ">=3.10"
dependencies = []
keywords = ["database", "storage-engine", "buffer-pool", "lru", "b-plus-tree", "lock-manager", "catalog"]
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
    "Topic :: Database :: Database Engines/Servers",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["minidb"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

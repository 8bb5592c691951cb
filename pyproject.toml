[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "murakami"
version = "0.1.0"
description = "Wire protocol codecs for an append-only stream store and a Raft consensus core"
requires-python = ">=3.10"
dependencies = []
keywords = ["streams", "protocol", "raft", "consensus", "log", "database"]
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
    "Topic :: Database :: Database Engines/Servers",
    "Topic :: System :: Distributed Computing",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["murakami"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

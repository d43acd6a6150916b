[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "agswing"
version = "0.1.0"
description = "Chain-side modules for a SwingSet controller: chain types, SwingSet messages and params, a virtual bank and a virtual IBC port"
requires-python = ">=3.10"
dependencies = []
keywords = ["swingset", "blockchain", "state machine", "ibc", "bank", "keeper"]
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
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["agswing"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

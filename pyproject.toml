[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "npcstore"
version = "0.1.0"
description = "SQLite-backed conversation history, memory lifecycle and knowledge graph store for NPC agents"
requires-python = ">=3.10"
dependencies = []
keywords = ["npc", "agent", "llm", "memory", "knowledge-graph", "sqlite"]
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
    "Topic :: Scientific/Engineering :: Artificial Intelligence",
    "Topic :: Database",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["npcstore"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

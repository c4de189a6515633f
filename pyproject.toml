[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "dicegame"
version = "0.1.0"
description = "A house-backed dice betting game with signed, verifiable roll resolution"
requires-python = ">=3.10"
keywords = ["dice", "betting", "game", "ed25519", "ledger", "simulation"]
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
    "Topic :: Games/Entertainment",
]
dependencies = [
    "cryptography",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["dicegame"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

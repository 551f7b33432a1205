[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tickerflow"
version = "0.1.0"
description = "Reads the Coinbase ticker feed, keeps an in-memory log with moving averages, and broadcasts text to websocket clients."
requires-python = ">=3.10"
keywords = [
    "cryptocurrency",
    "ticker",
    "coinbase",
    "moving-average",
    "websocket",
    "streaming",
    "charting",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Financial and Insurance Industry",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Office/Business :: Financial :: Investment",
    "Topic :: Internet",
]
dependencies = [
    "python-dotenv",
    "websockets",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["tickerflow"]

[tool.hatch.build.targets.sdist]
include = [
    "tickerflow",
    "tests",
]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true

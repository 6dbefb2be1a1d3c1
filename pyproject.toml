[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tcpgate"
version = "0.1.0"
description = "Length-prefixed TCP gateway server with a worker pool, command router and load-testing client"
requires-python = ">=3.10"
keywords = ["tcp", "gateway", "server", "binary-protocol", "worker-pool", "load-testing"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: Internet :: Proxy Servers",
    "Topic :: System :: Networking",
    "Topic :: System :: Benchmark",
]
dependencies = [
    "pyyaml>=6.0",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
    "pytest-asyncio>=0.21",
]

[project.scripts]
tcpgate = "tcpgate.cli:main"
tcpgate-loadtest = "tcpgate.loadtest:main"

[tool.hatch.build.targets.wheel]
packages = ["tcpgate"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true

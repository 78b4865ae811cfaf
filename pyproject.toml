[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "simpanan"
version = "0.1.0"
description = "Local HTTP workspace for editing .simp query files, with multi-tab event streaming and session recovery"
requires-python = ">=3.10"
dependencies = []
keywords = ["database", "query", "webui", "server-sent-events", "editor"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Web Environment",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database :: Front-Ends",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
simpanan-webui = "simpanan.server:main"

[tool.hatch.build.targets.wheel]
packages = ["simpanan"]

[tool.pytest.ini_options]
addopts = "-ra"

[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "scanopts"
version = "0.1.0"
description = "Option handling, vulnerability DB update checks and cache plumbing for a security scanner front end"
requires-python = ">=3.10"
keywords = ["security", "vulnerability", "scanner", "cache", "container", "options"]
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
    "Topic :: Security",
    "Typing :: Typed",
]
dependencies = [
    "requests",
    "redis",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
scanopts-eol = "scanopts.eol:main"

[tool.hatch.build.targets.wheel]
packages = ["scanopts"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true

[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "bddreport"
version = "0.1.0"
description = "Gherkin feature models, step definitions and result formatters (pretty, progress, cucumber JSON, JUnit XML, event stream) for BDD test runs."
requires-python = ">=3.10"
dependencies = []
keywords = ["bdd", "gherkin", "cucumber", "junit", "formatter", "testing", "reporting"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Testing :: BDD",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["bddreport"]

[tool.hatch.build.targets.sdist]
include = ["bddreport", "tests", "README.md"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "borrowlens"
version = "0.3.5"
description = "mdBook preprocessor that embeds interactive ownership and runtime visualisations of Rust code"
requires-python = ">=3.11"
dependencies = []
keywords = [
    "mdbook",
    "preprocessor",
    "rust",
    "ownership",
    "borrow-checker",
    "visualization",
    "documentation",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Documentation",
    "Topic :: Text Processing :: Markup :: Markdown",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
borrowlens = "borrowlens.cli:main"
borrowlens-serve = "borrowlens.serve.server:main"

[tool.hatch.build.targets.wheel]
packages = ["borrowlens"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py311"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.11"
warn_unused_ignores = true

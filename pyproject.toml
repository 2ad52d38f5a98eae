[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "blockcr"
version = "0.1.0"
description = "Cyclic reduction solver for bordered block bidiagonal linear systems"
requires-python = ">=3.10"
dependencies = ["numpy"]
keywords = [
    "linear algebra",
    "cyclic reduction",
    "block bidiagonal",
    "BABD",
    "ABD",
    "boundary value problems",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Mathematics",
]

[project.optional-dependencies]
test = ["pytest", "numpy"]

[project.scripts]
blockcr-demo = "blockcr.demo:main"

[tool.hatch.build.targets.wheel]
packages = ["blockcr"]

[tool.pytest.ini_options]
addopts = "-ra"

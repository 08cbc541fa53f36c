[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "asservstream"
version = "0.1.0"
description = "Decode a robot motion-control telemetry stream from a serial port and send tuning commands back"
requires-python = ">=3.10"
dependencies = [
    "pyserial",
]
keywords = ["robotics", "serial", "telemetry", "pid", "motion-control", "stream"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Visualization",
    "Topic :: Terminals :: Serial",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
asservstream = "asservstream.stream:main"

[tool.hatch.build.targets.wheel]
packages = ["asservstream"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

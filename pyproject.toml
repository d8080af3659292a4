[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "a64modem"
version = "0.1.0"
description = "AT-protocol modem control, modem power sequencing, PIO pin handling and SCP messaging for Allwinner A64 phones"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "modem",
    "at-commands",
    "telephony",
    "allwinner",
    "a64",
    "gpio",
    "pio",
    "scp",
]
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
    "Topic :: Communications :: Telephony",
    "Topic :: System :: Hardware",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["a64modem"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true

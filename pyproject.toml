[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "snapair"
version = "0.1.0"
description = "MSP and Tello-style message bridging between UDP, a Bluetooth-style link and a serial port for a wireless air unit"
requires-python = ">=3.10"
keywords = ["msp", "multiwii", "tello", "udp", "serial", "drone", "bridge", "crc8"]
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
    "Topic :: Communications",
    "Topic :: System :: Networking",
]
dependencies = [
    "pyserial",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["snapair"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

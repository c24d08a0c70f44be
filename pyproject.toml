[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "iptrap"
version = "1.0.7"
description = "A fast, stateless TCP sinkhole"
requires-python = ">=3.10"
keywords = ["tcp", "sinkhole", "honeypot", "syn-cookie", "siphash", "zeromq"]
classifiers = [
    "Development Status :: 5 - Production/Stable",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking :: Monitoring",
    "Topic :: Security",
]
dependencies = [
    "pyzmq",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
iptrap = "iptrap.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["iptrap"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

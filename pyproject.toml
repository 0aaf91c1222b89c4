[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "plistwatch"
version = "0.1.0"
description = "Read, write and convert binary and XML property lists"
requires-python = ">=3.10"
keywords = ["plist", "property list", "bplist", "xml", "keypath"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Environment :: Console",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: File Formats",
    "Topic :: Utilities",
]
dependencies = [
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
ply = "plistwatch.ply:main"
plist-tabler = "plistwatch.tabler:main"

[tool.hatch.build.targets.wheel]
packages = ["plistwatch"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

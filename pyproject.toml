[build-system]
requires = ["setuptools>=64"]
build-backend = "setuptools.build_meta"

[project]
name = "conduitnode"
version = "0.1.0"
description = "Building blocks for a Conduit content node: command-line options, advertiser campaigns and attestation tokens, device attestation, chunk reads and file serving helpers"
requires-python = ">=3.10"
keywords = ["lightning", "content", "chunks", "attestation", "advertising", "ed25519"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
]
dependencies = [
    "cryptography",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[tool.setuptools.packages.find]
include = ["conduitnode*"]

[tool.pytest.ini_options]
addopts = "-ra"

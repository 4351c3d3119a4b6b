[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "rtpinterceptors"
version = "0.1.0"
description = "RTP/RTCP interceptors for NACK generation and response and packet dumping, with building blocks for receiver reports and RFC 8888 feedback"
requires-python = ">=3.10"
dependencies = []
keywords = ["rtp", "rtcp", "webrtc", "nack", "interceptor", "rfc8888", "congestion-control"]
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
    "Topic :: Communications :: Internet Phone",
    "Topic :: Multimedia :: Video",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["rtpinterceptors"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true

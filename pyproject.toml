[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "overlaynet"
version = "0.1.0"
description = "IPv4/IPv6 address arithmetic and change planning for VXLAN and WireGuard overlay networks"
requires-python = ">=3.10"
dependencies = [
    "psutil",
]
keywords = ["networking", "overlay", "vxlan", "wireguard", "cidr", "subnet"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["overlaynet"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true

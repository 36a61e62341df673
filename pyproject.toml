[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "nicnet"
version = "0.1.0"
description = "A small user-space network stack: raw Ethernet device, ARP, IPv4, ICMP, minimal TCP and a file-serving HTTP request handler"
requires-python = ">=3.10"
dependencies = []
keywords = ["networking", "ethernet", "arp", "ipv4", "icmp", "tcp", "http", "raw-socket"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
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
test = ["pytest"]

[project.scripts]
nicnet = "nicnet.app:main"

[tool.hatch.build.targets.wheel]
packages = ["nicnet"]

[tool.pytest.ini_options]
addopts = "-ra"

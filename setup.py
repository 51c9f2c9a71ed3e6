#!/usr/bin/env python3
"""
Setup script for DockWatch.
Installs the telemetry engine and the dockwatch command.
"""

from setuptools import setup, find_packages

setup(
    name="dockwatch",
    version="1.0.0",
    description="Docker container telemetry, log decoding and health alerting",
    python_requires=">=3.10",
    packages=find_packages(include=["dockwatch", "dockwatch.*"]),
    install_requires=[
        "httpx>=0.24",
        "pydantic>=2.0",
        "PyYAML>=6.0",
        "aiofiles>=23.1",
        "tabulate>=0.9",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.21",
        ],
    },
    entry_points={
        "console_scripts": [
            "dockwatch=dockwatch.__main__:main",
        ],
    },
)

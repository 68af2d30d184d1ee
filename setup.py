"""Setup script for the gasguard package."""

from setuptools import find_packages, setup

setup(
    name="gasguard",
    version="0.1.0",
    description="Gas and climate hazard interlock between a sensing node and a supervisor over MQTT",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.9",
    install_requires=[
        "pyyaml",
        "python-dotenv",
        "paho-mqtt>=2.0.0",
        "python-kasa",
        "aiohttp",
        "rich",
    ],
    extras_require={
        "dev": [
            "pytest",
            "pytest-asyncio",
            "black",
            "isort",
            "mypy",
        ],
    },
    entry_points={
        "console_scripts": [
            "gasguard-sensor=gasguard.sensor_node:main",
            "gasguard-supervisor=gasguard.supervisor:main",
        ],
    },
)

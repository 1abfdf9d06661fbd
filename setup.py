"""Setup script for the Payout Gateway."""

from setuptools import setup, find_packages

setup(
    name="payout-gateway",
    version="1.0.0",
    description="Idempotent payment initiation over Wise with at-least-once event delivery",
    python_requires=">=3.10",
    packages=find_packages(include=["payout_gateway", "payout_gateway.*"]),
    install_requires=[
        line.strip()
        for line in open("requirements.txt")
        if line.strip() and not line.startswith("#") and not line.startswith("git+")
    ],
    extras_require={
        "test": [
            "pytest>=8.0.0",
            "pytest-asyncio>=0.23.0",
            "pytest-mock>=3.12.0",
            "aiosqlite>=0.19.0",
        ],
        "dev": [
            "black>=23.0.0",
            "isort>=5.12.0",
            "flake8>=6.0.0",
            "mypy>=1.4.0",
            "pytest-cov>=4.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "payout-gateway=payout_gateway.api.main:run",
            "payout-gateway-redelivery=payout_gateway.workers.event_redelivery:main",
        ]
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Financial and Insurance Industry",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)

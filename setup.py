"""Setup configuration for repointel."""

from setuptools import find_packages, setup

setup(
    name="repointel",
    version="0.1.0",
    description="GitHub repository intelligence — cached aggregation and activity metrics",
    python_requires=">=3.11",
    packages=find_packages(where="src", include=["repointel*"]),
    package_dir={"": "src"},
    install_requires=[
        "httpx>=0.27.0",
        "pandas>=2.2.0",
        "pydantic>=2.6.0",
        "pydantic-settings>=2.1.0",
    ],
    entry_points={
        "console_scripts": [
            "repointel=repointel.cli:cli_entry",
        ],
    },
    extras_require={
        "dev": [
            "pytest>=8.0.0",
            "pytest-asyncio>=0.23.0",
            "respx>=0.21.0",
        ],
    },
)

#!/usr/bin/env python3
"""StreamIndex package setup."""

from setuptools import setup, find_packages
from pathlib import Path

readme = Path(__file__).parent / "README.md"
long_description = readme.read_text(encoding="utf-8") if readme.exists() else ""

setup(
    name="streamindex",
    version="0.1.0",
    description="Change-stream to search-index sync engine with bounded, retried bulk writes",
    long_description=long_description,
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Framework :: AsyncIO",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
        "Topic :: Database",
        "Topic :: Text Processing :: Indexing",
    ],
    python_requires=">=3.9",
    install_requires=[
        "elasticsearch[async]>=8.0.0",
        "tenacity>=8.0.0",
    ],
    extras_require={
        "aws": ["boto3>=1.26"],
        "dev": ["pytest", "pytest-cov", "pytest-asyncio>=0.21", "boto3>=1.26"],
    },
    entry_points={
        "console_scripts": [
            "streamindex=streamindex.cli:main",
        ],
    },
)

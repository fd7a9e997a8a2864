# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Setup configuration for copilot-error-relay package."""

from pathlib import Path

from setuptools import find_packages, setup

# Read the README file if it exists
this_directory = Path(__file__).parent
readme_path = this_directory / "README.md"
if readme_path.exists():
    long_description = readme_path.read_text(encoding="utf-8")
else:
    long_description = "Buffered backend error relay with session and request correlation"

setup(
    name="copilot-error-relay",
    version="0.1.0",
    author="Copilot-for-Consensus Contributors",
    description="Buffered backend error relay with session and request correlation",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/Alan-Jowett/CoPilot-For-Consensus",
    license="MIT",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.10",
    install_requires=[
        "requests>=2.31.0",  # GraphQL sink transport
    ],
    extras_require={
        "fastapi": [
            "starlette>=0.27.0",  # ErrorRelayMiddleware
        ],
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "fastapi>=0.110.0",
            "httpx>=0.25.0",  # fastapi TestClient
        ],
    },
)

"""Setup configuration for bitbucket-collector package."""

from setuptools import setup, find_packages
from pathlib import Path

# Read the README file
readme_file = Path(__file__).parent / "README.md"
long_description = (
    readme_file.read_text(encoding="utf-8") if readme_file.exists() else ""
)

setup(
    name="bitbucket-collector",
    version="1.0.0",
    description="Stateful, incremental collection of Bitbucket Server API data into raw tables",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["collectors", "collectors.*"]),
    python_requires=">=3.10",
    install_requires=[
        "httpx>=0.25.0",
        "tenacity>=8.0.0",  # For retry logic
        "requests-toolbelt>=1.0.0",  # User-Agent construction
        "ibis-framework[duckdb]>=9.0.0",  # Raw tables and seed iteration
        "pandas>=1.5.0",
        "pyyaml>=6.0",
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "black>=22.0.0",
            "flake8>=5.0.0",
            "mypy>=0.990",
        ],
        "test": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
    ],
    keywords="bitbucket data-collection incremental-sync api-client etl",
)

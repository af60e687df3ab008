"""
Setup script for Dimensional Modeling Library.
"""

from setuptools import setup, find_packages

# Read the README file
def read_readme():
    with open("README.md", "r", encoding="utf-8") as fh:
        return fh.read()

# Read requirements
def read_requirements():
    with open("requirements.txt", "r", encoding="utf-8") as fh:
        return [line.strip() for line in fh if line.strip() and not line.startswith("#")]

setup(
    name="dimensional-modeling",
    version="1.0.0",
    author="Data Engineering Team",
    author_email="data-engineering@company.com",
    description="Spark and Delta Lake jobs for fact deduplication, cumulative activity tables and SCD Type 2 history",
    long_description=read_readme(),
    long_description_content_type="text/markdown",
    url="https://github.com/company/dimensional-modeling",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Topic :: Database",
        "Topic :: Scientific/Engineering :: Information Analysis",
    ],
    python_requires=">=3.9",
    install_requires=read_requirements(),
    extras_require={
        "dev": [
            "pytest>=6.0.0",
            "pytest-cov>=2.12.0",
            "pytest-mock>=3.6.0",
            "flake8>=3.9.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "dimensional-modeling=libraries.dimensional_modeling.cli:main",
        ],
    },
    include_package_data=True,
    zip_safe=False,
    keywords="spark, delta, scd, cumulative, deduplication, dimensional, data-engineering, etl",
    project_urls={
        "Bug Reports": "https://github.com/company/dimensional-modeling/issues",
        "Source": "https://github.com/company/dimensional-modeling",
    },
)

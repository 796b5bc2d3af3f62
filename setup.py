# File: setup.py
# Location: rvsharing/setup.py
"""
Setup script for rvsharing.

This file configures how the package is built, installed, and what
dependencies are required.
"""

import os
from setuptools import setup, find_packages

# Load version from version.py without importing the module
version = {}
with open(os.path.join("rvsharing", "version.py")) as f:
    exec(f.read(), version)

# Read the README for the long description
this_dir = os.path.abspath(os.path.dirname(__file__))
with open(os.path.join(this_dir, "README.md"), encoding="utf-8") as f:
    long_description = f.read()

setup(
    name="rvsharing",
    version=version["__version__"],
    description="Exact p-values for rare variant sharing among affected relatives.",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "numpy",
        "pandas",
        "scipy",
        "statsmodels",
    ],
    extras_require={"test": ["pytest"]},
    entry_points={"console_scripts": ["rvsharing=rvsharing.cli:main"]},
    include_package_data=True,
    package_data={"rvsharing": ["config.json"]},
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX :: Linux",
    ],
)

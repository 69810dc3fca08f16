"""
Setup script for the grant discovery pipeline.

Allows development installation with `pip install -e .`
"""

import re
from pathlib import Path

from setuptools import setup, find_packages

VERSION = re.search(
    r'^__version__ = "([^"]+)"',
    (Path(__file__).parent / "version.py").read_text(),
    re.MULTILINE,
).group(1)

setup(
    name="grant-discovery",
    version=VERSION,
    packages=find_packages(include=["grant_discovery", "grant_discovery.*"]),
    py_modules=["version"],
    python_requires=">=3.11",
    install_requires=[
        "pydantic>=2.0",
        "tenacity>=8.2",
        "pymongo>=4.6",
        "langchain-core>=0.3",
        "langchain-openai>=0.2",
        "python-dotenv>=1.0",
        "json-repair>=0.25",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
        ],
    },
)

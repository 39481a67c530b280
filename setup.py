#!/usr/bin/env python3
from pathlib import Path
from setuptools import setup, find_packages


ROOT = Path(__file__).parent
REQ_FILE = ROOT / "requirements.txt"


def read_requirements():
    if REQ_FILE.exists():
        with REQ_FILE.open("r", encoding="utf-8") as f:
            reqs = [line.strip() for line in f.readlines() if line.strip() and not line.startswith("#")]
        return reqs
    return []


def read_readme():
    for name in ("README.md", "README.rst", "README.txt"):
        p = ROOT / name
        if p.exists():
            return p.read_text(encoding="utf-8")
    return "SeedRunner: replay JSON-described HTTP seed requests against REST and Elasticsearch backends."


setup(
    name="seedrunner",
    version="1.0.0",
    description="SeedRunner: replay JSON-described HTTP seed requests against REST and Elasticsearch backends.",
    long_description=read_readme(),
    long_description_content_type="text/markdown",
    author="",
    packages=find_packages(include=["seed_runner", "seed_runner.*"], exclude=["build*", "dist*", "*.egg-info*", "tests*"]),
    python_requires=">=3.10",
    install_requires=read_requirements(),
    extras_require={
        "test": ["pytest>=7"],
    },
    include_package_data=True,
    entry_points={
        "console_scripts": [
            "seedrunner=seed_runner.main:main",
        ]
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
)

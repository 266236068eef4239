"""
Setup script for coco-coach.

Coco Coach runs scheduled, voice-driven cognitive training sessions on a
small home device. It serves three roles:

1. Session Runner - Sequences an adaptive plan of spoken exercises
2. Scoring Engine - Scores every exercise family with its own heuristic
3. Reporter - Delivers exactly one session summary to the backend

The 'coach' command is the primary entry point.
"""

from setuptools import find_packages, setup

setup(
    name="coco-coach",
    version="2.0.0",
    description="Voice-driven cognitive training sessions for home devices",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="Coco",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["config"],
    package_data={"coach": ["data/*.json"]},
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # HTTP
        "httpx>=0.25.0",
        # Speech + LLM
        "openai>=1.0.0",
        # Audio analysis
        "numpy>=1.24.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "coach=coach.cli:run",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Healthcare Industry",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Scientific/Engineering :: Medical Science Apps.",
    ],
    keywords="cognitive-training voice speech elderly-care",
)

"""
Setup script for exam-session.

exam-session owns a single in-progress test attempt for an exam-taking
web application:

1. Answers and per-question visitation status
2. The attempt countdown and forced submission at expiry
3. Progress persistence and exactly-once submission against the REST backend

It is a library; the host UI renders SessionManager.view().
"""

from setuptools import find_packages, setup

setup(
    name="exam-session",
    version="1.0.0",
    description="Test attempt session manager: answers, countdown, progress sync and submission",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # HTTP
        "httpx>=0.25.0",
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
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: Education",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Education :: Testing",
    ],
    keywords="exam test-attempt countdown progress-sync education",
)

"""
Setup script for bunnypdf.

Allows development installation with `pip install -e .`
"""

from setuptools import setup, find_packages

setup(
    name="bunnypdf",
    version="0.1.0",
    description="HTML to PDF rendering service using Playwright/Chromium",
    packages=find_packages(include=["bunnypdf", "bunnypdf.*"]),
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.110",
        "uvicorn[standard]>=0.29",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
        "playwright>=1.40",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
            "httpx>=0.27",
        ],
    },
    entry_points={
        "console_scripts": [
            "bunnypdf=bunnypdf.__main__:main",
        ],
    },
)

"""
Setup script for conversion-service project.

Allows development installation with `pip install -e .`
"""

from setuptools import setup, find_packages

setup(
    name="conversion-service",
    version="0.1.0",
    packages=find_packages(include=["conversion_service", "conversion_service.*"]),
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.110",
        "uvicorn>=0.27",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
        "playwright>=1.40",
        "pypdf>=4.0",
        "cryptography>=41.0",
        "fpdf2>=2.7",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
            "httpx>=0.25",
        ],
    },
    entry_points={
        "console_scripts": [
            "conversion-service=conversion_service.app:main",
        ],
    },
)

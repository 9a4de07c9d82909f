"""Setup script for the container log gateway"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="container-log-gateway",
    version="1.0.0",
    author="Container Log Gateway",
    author_email="admin@localhost.local",
    description="HTTP gateway streaming Docker container logs line by line",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["log_gateway", "log_gateway.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: System Administrators",
        "Topic :: System :: Logging",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.10",
    install_requires=[
        "fastapi>=0.110",
        "uvicorn[standard]>=0.27",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
        "docker>=7.0",
        "requests>=2.31",
        "python-dateutil>=2.8",
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
            "log-gateway=log_gateway.main:run",
        ],
    },
)

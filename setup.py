"""
Setup script for package installation
"""
from setuptools import setup, find_packages

setup(
    name="listing_wizard",
    version="0.1.0",
    description="Multi-step eBay listing description wizard with an AI and browser rendering proxy",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    package_data={"listing_wizard": ["data/*.yaml"]},
    include_package_data=True,
    python_requires=">=3.10,<3.14",
    install_requires=[
        "fastapi>=0.110",
        "starlette>=0.36",
        "uvicorn>=0.27",
        "pydantic>=2.5",
        "sqlalchemy>=2.0",
        "redis>=5.0",
        "PyYAML>=6.0",
        "python-dotenv>=1.0",
        "httpx>=0.27",
        "litellm>=1.40",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
        ],
    },
)

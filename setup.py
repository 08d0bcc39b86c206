from pathlib import Path

from setuptools import find_packages, setup

ROOT = Path(__file__).parent


def read_version() -> str:
    for line in (ROOT / "solholdings" / "__init__.py").read_text().splitlines():
        if line.startswith("__version__"):
            return line.split("=", 1)[1].strip().strip('"')
    raise RuntimeError("__version__ not found")


setup(
    name="solholdings",
    version=read_version(),
    description="Discover Solana token holdings and resolve their metadata",
    packages=find_packages(include=["solholdings", "solholdings.*"]),
    python_requires=">=3.10",
    install_requires=[
        "aiohttp>=3.9",
        "base58>=2.1",
        "cachetools>=5.3",
        "orjson>=3.9",
        "pydantic>=2.5",
        "solana>=0.34,<0.40",
        "solders>=0.21",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "holdings-cli=solholdings.cli:main",
        ],
    },
)

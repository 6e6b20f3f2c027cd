from setuptools import setup, find_packages

setup(
    name="clearcast",
    version="0.1.0",
    description="Two-party call signaling with per-participant recording and meeting audio merge",
    author="",
    python_requires=">=3.9",
    packages=find_packages(include=["clearcast", "clearcast.*"]),
    install_requires=[
        "rich>=12.5.0",
        "pydantic>=2.0.0",
        "pyyaml>=6.0.0",
        "pypubsub>=4.0.3",
        "aiohttp>=3.9.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "clearcast=clearcast.main:main",
            "clearcast-merge=clearcast.merge.cli:main",
        ],
    },
)

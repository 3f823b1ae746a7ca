"""
setup.py for the photo-moments repo.

Needed because the source tree does not follow the standard layout:
  - photo_moments lives under backend/src/photo_moments/

This file holds the metadata and maps package dirs.
"""

from setuptools import setup

setup(
    name="photo-moments",
    version="0.1.0",
    description="Group photos into moments and rank the best shot of each",
    python_requires=">=3.8",
    package_dir={
        "photo_moments": "backend/src/photo_moments",
    },
    packages=[
        "photo_moments",
        "photo_moments.cli",
        "photo_moments.curation",
    ],
    install_requires=[
        "numpy",
        "click",
        "tqdm",
        "tenacity",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    entry_points={
        "console_scripts": [
            "photo-moments=photo_moments.cli.main:cli",
        ],
    },
)

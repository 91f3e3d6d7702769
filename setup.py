"""
Setup script for tiny-kmv.
"""

from setuptools import setup, find_packages

setup(
    name="tiny-kmv",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={"tiny_kmv": ["py.typed"]},
)

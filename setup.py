from setuptools import setup, find_packages

setup(
    name="tilestack",
    version="0.1.0",
    description="Export and scale multi-resolution tile pyramids from large tiled image stacks",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "numpy>=1.21.0",
        "Pillow>=9.0.0",
        "requests>=2.25.0",
        "flask>=2.0.0",
        "click>=8.0.0",
    ],
    extras_require={
        "test": ["pytest>=7.0.0"],
    },
    entry_points={
        "console_scripts": [
            "tilestack=tilestack.cli:main",
        ],
    },
    python_requires=">=3.8",
)

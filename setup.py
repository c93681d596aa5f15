from setuptools import setup, find_packages

setup(
    name="perftune",
    version="0.1.0",
    packages=find_packages(include=["perftune", "perftune.*"]),
    install_requires=[
        "numpy>=1.24.3",
        "psutil>=5.9.0",
        "click>=8.0.0",
    ],
    extras_require={
        'test': [
            "pytest>=7.4.0",
        ],
    },
    entry_points={
        'console_scripts': [
            'perftune=perftune.cli.main:cli',
        ],
    },
    python_requires=">=3.9",
)

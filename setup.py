from setuptools import setup, find_packages

setup(
    name="memmodel",
    version="1.0.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={
        "memmodel.config": ["targets/*.json"],
        "memmodel.utils": ["templates/*.j2"],
    },
    entry_points={
        'console_scripts': [
            'memmodel=memmodel.cli:main',
        ],
    },
    install_requires=[
        "pyelftools>=0.29",
        "jinja2>=3.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    python_requires=">=3.8",
    description="Memory model analysis for embedded firmware images",
)

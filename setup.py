# setup.py
from setuptools import setup, find_packages

setup(
    name="tightbudget",
    version="0.1.0",
    description="Recurring transaction scheduling for a personal budget tracker",
    author="Your Name",
    author_email="you@example.com",
    url="https://github.com/yourusername/tightbudget",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "click>=8.0",
        "pyyaml>=5.3",
        "python-dotenv>=0.19",
        "xlsxwriter>=3.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "openpyxl>=3.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "tightbudget=tightbudget.cli:main",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
)

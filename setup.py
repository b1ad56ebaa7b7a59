from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

with open("requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [line.strip() for line in fh if line.strip() and not line.startswith("#")]

setup(
    name="settlement-validation",
    version="1.0.0",
    description="Black-box browser validation harness for an asynchronous settlement backend",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["settlement_validation", "settlement_validation.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Testing",
        "Framework :: AnyIO",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.9",
    install_requires=requirements,
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
            "flask>=2.3",
            "werkzeug>=2.3",
        ],
    },
    entry_points={
        "console_scripts": [
            "settlement-validate=settlement_validation.cli:main",
        ],
    },
)

from setuptools import setup, find_packages
from pathlib import Path

this_dir = Path(__file__).parent
readme = (this_dir / "README.md").read_text(encoding="utf-8") if (this_dir / "README.md").exists() else ""

setup(
    name="kubeless-runtime",
    version="0.1.0",
    description="Serve a statically registered Python function as a Kubeless function",
    long_description=readme,
    long_description_content_type="text/markdown",
    author="kubeless-runtime contributors",
    license="MIT",
    packages=find_packages(include=["kubeless", "kubeless.*"]),
    install_requires=[
        "prometheus_client>=0.17",
    ],
    extras_require={
        "test": ["pytest>=7"],
    },
    entry_points={
        "console_scripts": [
            "kubeless=kubeless.cli:main",
        ]
    },
    python_requires=">=3.8",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Environment :: Console",
        "Topic :: System :: Systems Administration",
    ],
)

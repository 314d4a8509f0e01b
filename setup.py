"""Setup script for ZFIN Bridge."""

from setuptools import setup, find_packages

setup(
    name="zfin-bridge",
    version="1.0.0",
    description="Two-way folder relay between the Bank and ZFIN exchange directories",
    long_description=open("README.md", encoding="utf-8").read(),
    long_description_content_type="text/markdown",
    author="ZFIN Bridge maintainers",
    python_requires=">=3.10",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "watchdog>=3.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "zfin-bridge=zfin_bridge.__main__:run",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: No Input/Output (Daemon)",
        "Intended Audience :: System Administrators",
        "Operating System :: Microsoft :: Windows",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python :: 3",
        "Topic :: System :: Archiving",
        "Topic :: Utilities",
    ],
)

from setuptools import setup, find_packages

setup(
    name="tcpchat",
    version="1.0.0",
    description="Threaded TCP chat server and terminal client with private whispers",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "colorama",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "tcpchat-server = tcpchat.server:main",
            "tcpchat-client = tcpchat.client:main",
        ],
    },
    python_requires=">=3.10",
)

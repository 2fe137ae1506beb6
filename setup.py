# setup.py
from setuptools import setup, find_packages

setup(
    name="zuxchain",
    version="0.1.0",
    packages=find_packages(include=["zuxchain", "zuxchain.*"]),
    python_requires=">=3.9",
    install_requires=[
        "PyNaCl",             # ed25519
        "pycryptodome",       # keccak transaction ids
        "msgpack",            # snapshot encoding
        "prometheus_client",  # metrics
        "psutil",             # monitoring
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "zuxchain-sim=zuxchain.node:main",
        ],
    },
)

# setup.py
from setuptools import setup, find_packages

setup(
    name="tokenlaunch",
    version="0.1.0",
    packages=find_packages(include=["tokenlaunch", "tokenlaunch.*"]),
    python_requires=">=3.10",
    install_requires=[
        "msgpack",            # for trie values
        "rlp",                # trie node encoding
        "pycryptodome",       # keccak
        "cryptography",       # account keys
        "prometheus_client",  # monitoring
    ],
    extras_require={
        "leveldb": ["plyvel"],
        "test": ["pytest"],
    },
)

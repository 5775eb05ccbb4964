import os
import re
from codecs import open

from setuptools import find_packages
from setuptools import setup

# Based on https://github.com/pypa/sampleproject/blob/main/setup.py
# and https://python-packaging-user-guide.readthedocs.org/

here = os.path.abspath(os.path.dirname(__file__))

with open(os.path.join(here, "README.md"), encoding="utf-8") as f:
    long_description = f.read()
long_description_content_type = "text/markdown"

with open(os.path.join(here, "protochain/version.py")) as f:
    match = re.search(r'VERSION = "(.+?)"', f.read())
    assert match
    VERSION = match.group(1)

setup(
    name="protochain",
    version=VERSION,
    description="Watch HTTP/1.1 and HTTP/2 negotiation propagate across a TLS client, relay and origin.",
    long_description=long_description,
    long_description_content_type=long_description_content_type,
    license="MIT",
    classifiers=[
        "License :: OSI Approved :: MIT License",
        "Development Status :: 4 - Beta",
        "Operating System :: MacOS",
        "Operating System :: POSIX",
        "Programming Language :: Python :: 3 :: Only",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: Implementation :: CPython",
        "Topic :: Internet :: WWW/HTTP",
        "Topic :: Internet :: Proxy Servers",
        "Topic :: Software Development :: Testing",
    ],
    packages=find_packages(
        include=[
            "protochain",
            "protochain.*",
        ]
    ),
    include_package_data=True,
    package_data={
        "protochain": ["templates/*.html"],
    },
    entry_points={
        "console_scripts": [
            "protochain = protochain.tools.main:protochain",
        ],
    },
    python_requires=">=3.11",
    # https://packaging.python.org/en/latest/discussions/install-requires-vs-requirements/#install-requires
    # It is not considered best practice to use install_requires to pin dependencies to specific versions.
    install_requires=[
        "click>=7.0,<9",
        "cryptography>=38.0",
        "h11>=0.11,<0.17",
        "h2>=4.1,<5",
        "tornado>=6.2,<7",
    ],
    extras_require={
        "dev": [
            "hypothesis>=5.8,<7",
            "pytest-asyncio>=0.23",
            "pytest-timeout>=1.3.3",
            "pytest>=7",
        ],
    },
)

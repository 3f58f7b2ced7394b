#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
#
# IOV / Starname Ledger app protocol and python support library
#
import re

# To use this command to install and yet be able to edit the code (here). Great for dev:
#
#   pip install --editable .
#
# with cli dependencies
#
#   pip install --editable '.[cli]'
#
# with test dependencies (includes emulator)
#
#   pip install --editable '.[test]'
#
#
from setuptools import setup

# read version without importing package (it needs the requirements below)
with open("iovledger/__init__.py", "r") as fh:
    __version__ = re.search(r"^__version__ = '([^']+)'", fh.read(), re.M).group(1)

# these minimum versions are tested, some earlier values would probably work too.
requirements = [
    'coincurve>=15.0.1',
    'cryptography>=3.4',
    'bech32>=1.2.0',
    'hidapi>=0.10.1',
]

cli_requirements = [
    'click>=8.0.3',
    'pyqrcode>=1.2.1',
    'pypng>=0.0.21',
]

# emulator also needs click
test_requirements = [
    'pytest>=7.0',
    'click>=8.0.3',
]

with open("README.md", "r") as fh:
    long_description = fh.read()

setup(
    name='iov-ledger-protocol',
    version=__version__,
    packages=[ 'iovledger' ],
    python_requires='>=3.7',
    install_requires=requirements,
    extras_require={
        'cli': cli_requirements,
        'test': test_requirements,
    },
    author='Coinkite Inc.',
    author_email='support@coinkite.com',
    description="Talk to the IOV and Starname apps on a Ledger device using Python",
    long_description=long_description,
    long_description_content_type="text/markdown",
    entry_points='''
        [console_scripts]
        iovledger=iovledger.cli:main
    ''',
    classifiers=[
        'Operating System :: POSIX :: Linux',
        'Operating System :: Microsoft :: Windows',
        'Operating System :: MacOS :: MacOS X',
    ],
)


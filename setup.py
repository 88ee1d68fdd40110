#!/usr/bin/env python
from setuptools import setup

setup(name='dupelink',
      version='0.1',
      description='Find duplicate files in a directory tree and replace them with hardlinks',
      author='Chad Netzer',
      author_email='chad.netzer+hardlinkable@gmail.com',
      py_modules=["dupelink"],
      python_requires=">=3.6",
      entry_points={
          'console_scripts': ['dupelink=dupelink:main']
      },
      classifiers=(
          "License :: OSI Approved :: GNU General Public License v2 or later (GPLv2+)",
          "Programming Language :: Python :: 3",
          "Operating System :: POSIX",
          "Operating System :: MacOS",
          "Operating System :: MacOS :: MacOS X",
          "Operating System :: Microsoft :: Windows",
          "Operating System :: Unix",
      ),
)

import sys
import os
import re

from setuptools import setup, find_packages
import setuptools
print("Using setuptools version", setuptools.__version__)

print('Python version = ',sys.version)

packages = find_packages(exclude=['tests'])
print('packages = ',packages)

run_dep = ['numpy>=1.17', 'numba>=0.57', 'pyyaml']
test_dep = ['pytest']

with open('README.rst') as file:
    long_description = file.read()

# Read in the gridcorr version from gridcorr/_version.py
# cf. http://stackoverflow.com/questions/458550/standard-way-to-embed-version-into-python-package
version_file=os.path.join('gridcorr','_version.py')
verstrline = open(version_file, "rt").read()
VSRE = r"^__version__ = ['\"]([^'\"]*)['\"]"
mo = re.search(VSRE, verstrline, re.M)
if mo:
    gridcorr_version = mo.group(1)
else:
    raise RuntimeError("Unable to find version string in %s." % (version_file,))
print('GridCorr version is %s'%(gridcorr_version))

dist = setup(
    name="GridCorr",
    version=gridcorr_version,
    author="Mike Jarvis",
    author_email="michael@jarvis.net",
    description="Python module for counting pairs of 3-d points in bins of (s, mu)",
    long_description=long_description,
    license="BSD License",
    packages=packages,
    python_requires='>=3.8',
    install_requires=run_dep,
    extras_require={'test': test_dep},
)

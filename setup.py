# Copyright 2013-2016 Tom Eulenfeld, MIT license
import os.path
import re

from setuptools import find_packages, setup


def find_version(*paths):
    fname = os.path.join(os.path.dirname(__file__), *paths)
    with open(fname) as fp:
        code = fp.read()
    match = re.search(r"^__version__ = ['\"]([^'\"]*)['\"]", code, re.M)
    if match:
        return match.group(1)
    raise RuntimeError("Unable to find version string.")


VERSION = find_version('dsmkernel', '__init__.py')
DESCRIPTION = ('Partial derivatives of seismic waveforms from spectral '
               'files of the Direct Solution Method')
LONG_DESCRIPTION = (
    'Please look at the package documentation for information.')

ENTRY_POINTS = {
    'console_scripts': ['dsmkernel-runtests = dsmkernel.tests:run',
                        'dsmkernel = dsmkernel.batch:run_cli']}

REQUIRES = ['decorator', 'numpy', 'scipy', 'obspy>=1.0.3', 'tqdm']

PACKAGE_DATA = {
    'dsmkernel': ['data/*.dat', 'example/*.json']}

CLASSIFIERS = [
    'Environment :: Console',
    'Intended Audience :: Science/Research',
    'License :: OSI Approved :: MIT License',
    'Operating System :: OS Independent',
    'Programming Language :: Python :: 3',
    'Programming Language :: Python :: 3.10',
    'Programming Language :: Python :: 3.11',
    'Programming Language :: Python :: 3.12',
    'Topic :: Scientific/Engineering :: Physics'
    ]


setup(name='dsmkernel',
      version=VERSION,
      description=DESCRIPTION,
      long_description=LONG_DESCRIPTION,
      author='Tom Eulenfeld',
      author_email='tom.eulenfeld@gmail.de',
      license='MIT',
      packages=find_packages(),
      package_dir={'dsmkernel': 'dsmkernel'},
      package_data=PACKAGE_DATA,
      install_requires=REQUIRES,
      entry_points=ENTRY_POINTS,
      python_requires='>=3.10',
      zip_safe=False,
      classifiers=CLASSIFIERS
      )

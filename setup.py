#
from setuptools import setup, find_namespace_packages

def get_version():
    """
    Get version number from the epi_pomp package.

    The easiest way would be to just ``import epi_pomp``, but note that this may
    fail if the dependencies have not been installed yet. Instead, we've put
    the version number in a simple version_info module, that we'll import here
    by temporarily adding the package directory to the pythonpath using sys.path.
    """
    import os
    import sys

    sys.path.append(os.path.abspath(os.path.join('src', 'epi_pomp')))
    from version_info import VERSION as version
    sys.path.pop()

    return version

def get_readme():
    """
    Load README.md text for use as description.
    """
    with open('README.md') as f:
        return f.read()

setup(
    # Module name (lowercase)
    name='epi-pomp',

    # Version
    version=get_version(),

    description='Stochastic compartmental epidemic simulation and particle-filter likelihood estimation.',

    long_description=get_readme(),

    long_description_content_type='text/markdown',

    license='MIT license',

    url='',

    # Packages to include (namespace packages under src/)
    package_dir={'': 'src'},
    packages=find_namespace_packages(where='src', include=('epi_pomp', 'epi_pomp.*')),
    package_data={'epi_pomp.datasets': ['*.csv']},

    python_requires='>=3.10',

    # List of dependencies
    install_requires=[
        # Dependencies go here!
        'numpy',
        'matplotlib',
        'pandas',
        'scipy',
        'joblib',
    ],
    extras_require={
        'docs': [
            # Sphinx for doc generation. Version 1.7.3 has a bug:
            'sphinx>=1.5, !=1.7.3',
            # Nice theme for docs
            'sphinx_rtd_theme',
        ],
        'dev': [
            # Flake8 for code style checking
            'flake8>=3',
            'pytest',
            'pytest-cov',
        ],
    },
)

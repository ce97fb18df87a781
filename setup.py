import os
from setuptools import setup, find_packages


NAME = 'slurmlocal'

VERSION = '0.1'

DESCRIPTION = """
Bootstraps a small multi-tenant SLURM cluster (controller, two compute nodes
and an accounting store) inside containers.
"""

LICENSE = 'MIT'

URL = 'https://github.com/slurmlocal/slurmlocal'

AUTHOR = 'slurmlocal developers', 'slurmlocal@example.org'

KEYWORDS = 'slurm hpc batch cluster docker munge slurmdbd tenants'

CLASSIFIERS = [
    'Programming Language :: Python :: 3',
    'Framework :: Twisted',
    'Topic :: System :: Clustering',
]


def read(fname, fail_silently=False):
    """
    Utility function to read the README file.
    """
    try:
        with open(os.path.join(os.path.dirname(__file__), fname)) as fh:
            return fh.read()
    except IOError:
        if not fail_silently:
            raise
        return ''


def requirements(fname):
    """
    Utility function to create a list of requirements from the output of the
    pip freeze command saved in a text file.
    """
    packages = read(fname).split('\n')
    packages = (p.strip() for p in packages)
    packages = (p for p in packages if p and not p.startswith('#'))
    return list(packages)


setup(
    name=NAME,
    version=VERSION,
    description=' '.join(DESCRIPTION.strip().splitlines()),
    long_description=read('README.md', True),
    classifiers=CLASSIFIERS,
    keywords=KEYWORDS,
    author=AUTHOR[0],
    author_email=AUTHOR[1],
    url=URL,
    license=LICENSE,
    packages=find_packages(),
    package_data={
        'slurmlocal': ['templates/*'],
        'slurmlocal.test': ['*.py'],
    },
    install_requires=requirements('requirements.txt'),
    extras_require={
        'test': requirements('requirements-test.txt'),
    },
    python_requires='>=3.8',
    entry_points=read('entry-points.ini', True),
)

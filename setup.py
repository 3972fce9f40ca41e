#!/usr/bin/env python
""" A query builder that turns request parameters into SqlAlchemy queries, MongoDB-style """

from setuptools import setup, find_packages

setup(
    name='docquery',
    version='1.0.0',
    license='BSD',
    description=__doc__,
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
    keywords=['sqlalchemy', 'mongodb', 'query builder', 'pagination'],

    packages=find_packages(exclude=('tests',)),
    scripts=[],
    entry_points={},

    python_requires='>= 3.8',
    install_requires=[
        'sqlalchemy[asyncio] >= 1.4.24',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-cov',
            'aiosqlite',
            'nox',
        ],
    },
    include_package_data=True,

    platforms='any',
    classifiers=[
        # https://pypi.python.org/pypi?%3Aaction=list_classifiers
        'Development Status :: 4 - Beta',
        'Intended Audience :: Developers',
        'Natural Language :: English',
        'Operating System :: OS Independent',
        'Programming Language :: Python :: 3',
        'Framework :: AsyncIO',
        'Topic :: Database :: Front-Ends',
        'Topic :: Software Development :: Libraries :: Python Modules',
    ],
)

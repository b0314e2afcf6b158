from setuptools import setup, find_packages
import os.path

# Get the long description from the relevant file
__here__ = os.path.dirname(os.path.realpath(__file__))
with open(os.path.join(__here__, 'README.rst'), 'r') as f:
    long_description = f.read()

setup(
    name='lotledger',
    version='0.1.0',

    description='Tax-lot ledger for crypto asset acquisitions, transfers and disposals',
    long_description=long_description,

    license='MIT',

    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Developers',
        'Intended Audience :: Financial and Insurance Industry',
        'Topic :: Software Development :: Libraries :: Python Modules',
        'Topic :: Utilities',
        'Topic :: Office/Business :: Financial :: Accounting',
        'Topic :: Office/Business :: Financial :: Investment',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
        'Natural Language :: English',
        'Programming Language :: Python',
        'Programming Language :: Python :: 3',
    ],

    keywords=['tax', 'cost basis', 'crypto', 'lots'],

    packages=find_packages(exclude=['tests']),

    python_requires='>=3.9',

    install_requires=[
        'sqlalchemy >= 1.4',
        'tablib',
        'pydantic >= 2.5',
    ],

    extras_require={
        'test': ['pytest'],
    },

    entry_points={
        'console_scripts': [
            'lotledger=lotledger.script:main',
        ],
    },
)

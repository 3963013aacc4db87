#!/usr/bin/env python
from pathlib import Path
from setuptools import setup, find_packages

long_description = Path("README.md").read_text()

setup(
    name='fleetstops',
    version='0.1.0',
    description='fleetstops detects stoppages in GPS telemetry of fleet vehicles and equipment. It cleans raw position reports, segments them into trips, runs time-gap, speed, clustering and hybrid stop detectors, reconciles their candidates and summarizes the results.',
    long_description=long_description,
    long_description_content_type='text/markdown',

    packages=find_packages(include=['fleetstops', 'fleetstops.*']),
    python_requires='>=3.9',

    install_requires=[
        'pandas',
        'geopandas',
        'numpy',
        'pyarrow',
    ],

    extras_require={
        'test': [
            'pytest',
        ]
    },

    package_data={'fleetstops': ['data/*']},
    classifiers=[
        'Programming Language :: Python :: 3',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
    ],
)

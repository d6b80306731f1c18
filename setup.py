# -*- coding:utf-8 -*-

from setuptools import find_packages, setup

from wsstomp import __version__

setup(
    name='wsstomp',
    version=__version__,
    description='STOMP 1.0/1.1/1.2 client over WebSocket for asyncio applications',
    long_description='Stomp Client over WebSocket for Asyncio applications, with '
                     'heartbeat supervision and partial frame reassembly.',
    classifiers=[],
    keywords='stomp websocket',
    author='Pedro Kiefer',
    author_email='pedro@kiefer.com.br',
    license='MIT',
    include_package_data=True,
    packages=find_packages(exclude=["tests", "tests.*"]),
    platforms=['any'],
    python_requires='>=3.8',
    install_requires=[
        'async-timeout',
        'websockets>=10.0',
        'bumpversion'
    ],
    extras_require={
        'tests': [
            'coverage',
            'pytest',
            'pytest-cov',
            'flake8',
        ]
    }
)

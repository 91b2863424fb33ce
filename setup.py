from setuptools import setup, find_packages

setup(
    name='rke2boot',
    version='0.1.0',
    packages=find_packages(exclude=['rke2boot.tests', 'rke2boot.tests.*']),
    include_package_data=True,
    package_data={
        'rke2boot.modules.rke2': ['templates/*.j2'],
    },
    install_requires=[
        'typer',
        'rich',
        'requests',
        'kubernetes',
        'pydantic>=2',
        'pydantic-settings>=2.3',
        'pyyaml',
        'jinja2',
        'jsonschema',
        'python-dotenv',
    ],
    extras_require={
        'test': [
            'pytest',
        ],
    },
    entry_points={
        'console_scripts': [
            'rke2boot=rke2boot.cli:app'
        ]
    },
    description='Single-node RKE2 server bootstrap for Linux hosts',
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: POSIX :: Linux',
        'Topic :: System :: Systems Administration',
    ],
    python_requires='>=3.8',
)

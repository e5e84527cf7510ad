from setuptools import setup, find_packages

setup(
    name='clusterkit',
    version='0.1.0',
    packages=find_packages(exclude=['scripts']),
    include_package_data=True,
    install_requires=[
        'typer[all]',
        'kubernetes>=18.20.0',
        'docker',
        'httpx',
        'pydantic>=2',
        'python-dotenv',
        'PyYAML',
        'jsonschema',
    ],
    extras_require={
        'test': [
            'pytest',
        ],
    },
    entry_points={
        'console_scripts': [
            'clusterkit=clusterkit.cli:app'
        ]
    },
    author='Your Name',
    description='Create and reconcile local Kubernetes clusters and registries',
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: OS Independent',
    ],
    python_requires='>=3.8',
)

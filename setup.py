from setuptools import setup, find_packages

setup(
    name='nodectl',
    version='0.1.0',
    packages=find_packages(exclude=['nodectl.tests']),
    include_package_data=True,
    install_requires=[
        'typer[all]',
        'fastapi',
        'uvicorn',
        'kubernetes',
        'paramiko',
        'jsonschema',
        'python-dotenv',
    ],
    extras_require={
        'test': [
            'pytest',
            'httpx',
        ],
    },
    entry_points={
        'console_scripts': [
            'nodectl=nodectl.cli:app'
        ]
    },
    author='Your Name',
    description='A CLI and API for adding nodes to running Kubernetes clusters',
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: OS Independent',
    ],
    python_requires='>=3.8',
)

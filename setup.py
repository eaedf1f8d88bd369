from setuptools import setup, find_packages

setup(
    name='rke2lab',
    version='0.1.0',
    packages=find_packages(),
    include_package_data=True,
    install_requires=[
        'typer[all]',
        'rich',
        'pydantic>=2',
        'pyyaml',
        'jsonschema',
        'kubernetes',
        'python-dotenv',
        'requests',
        'tenacity',
    ],
    extras_require={
        'test': [
            'pytest',
        ],
    },
    entry_points={
        'console_scripts': [
            'rke2lab=rke2lab.cli:run'
        ]
    },
    author='Your Name',
    description='Bootstrap a local RKE2 cluster on Multipass VMs and merge its kubeconfig',
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: POSIX :: Linux',
    ],
    python_requires='>=3.8',
)

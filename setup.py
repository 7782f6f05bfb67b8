from setuptools import setup, find_packages

setup(
    name='k3sctl',
    version='0.1.0',
    packages=find_packages(),
    include_package_data=True,
    package_data={
        'k3sctl.modules.k3s': ['templates/*.j2'],
    },
    install_requires=[
        'typer[all]',
        'kubernetes',
        'pydantic>=2',
        'pyyaml',
        'jinja2',
        'python-dotenv',
        'requests',
        'urllib3'
    ],
    extras_require={
        'test': [
            'pytest',
        ],
    },
    entry_points={
        'console_scripts': [
            'k3sctl=k3sctl.cli:app'
        ]
    },
    author='Your Name',
    description='Interactive node-role installer and post-provisioning configurator for k3s clusters',
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: POSIX :: Linux',
    ],
    python_requires='>=3.8',
)

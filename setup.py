from setuptools import setup, find_packages

setup(
    name="mongodb-atlas-provisioner",
    version="0.1.0",
    packages=find_packages(include=["atlas_prov", "atlas_prov.*"]),
    include_package_data=True,
    python_requires=">=3.9",
    install_requires=[
        "boto3",
        "botocore",
        "pydantic>=2",
        "PyYAML",
        "requests",
        "rich",
        "typer",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "atlas-prov=atlas_prov.cli:main",
        ],
    },
)

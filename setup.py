from setuptools import find_packages, setup

setup(
    name="annopatch",
    version="1",
    description="Merge annotation tables into the INFO and FILTER columns of VCF files",
    license="MIT",
    packages=find_packages(exclude=["tests"]),
    python_requires=">=3.9",
    install_requires=[
        "coloredlogs>=7.3",
        "pydantic>=2.4.2",
        "ruamel.yaml>=0.18.5",
        "typing_extensions>=4.7.1",
    ],
    extras_require={"test": ["pytest>=7"]},
    entry_points={"console_scripts": ["annopatch=annopatch.__main__:main"]},
    include_package_data=True,
)

import setuptools

setuptools.setup(
    name="rollexpr",
    version="0.0.0",
    classifiers=["Programming Language :: Python :: 3"],
    packages=setuptools.find_namespace_packages(include=["rollexpr", "rollexpr.*"]),
    package_data={"rollexpr": ["*.lark", "*.yaml"]},
    entry_points={"console_scripts": ["rollexpr=rollexpr.__main__:main"]},
    install_requires=["lark", "pyyaml"],
    extras_require={"test": ["pytest", "pytest-asyncio"]},
)

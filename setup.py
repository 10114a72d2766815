from setuptools import setup, find_namespace_packages

setup(
    name="stackviz",
    version="0.1.0",
    packages=find_namespace_packages(where="src", include=["stackviz", "stackviz.*"]),
    package_dir={"": "src"},
    python_requires=">=3.9",
    install_requires=[
        "pydantic>=2.0",
        "pyyaml>=6.0",
        "click>=8.0",
        "pydantic-settings>=2.7",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "stackviz=stackviz.CLI.main:main",
        ],
    },
)

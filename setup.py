#!/usr/bin/env python


from setuptools import setup, find_packages


setup(
    name="cn_view",
    version="1.0.0",
    description="Plot single-sample copy number calls by chromosome or genome-wide, with cytoband ideograms",
    package_dir={"": "src"},
    packages=find_packages("src"),
    package_data={"cn_view": ["data/*.tsv"]},
    entry_points={
        "console_scripts": [
            "cn-view=cn_view.command_line:main",
            "cn_view=cn_view.command_line:main"
        ]
    },
    python_requires=">3.8",
    install_requires=[
        "numpy",
        "pandas",
        "pysam>=0.23.3",
        "matplotlib",
        "seaborn"
    ],
    extras_require={
        "tests": ["pytest", "pytest-cov"]
    },
    include_package_data=True,
    zip_safe=False
)

from setuptools import setup, find_packages

# Read the README.md for the long description
with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="climate_trends",
    version="0.1.0",
    author="Pranay Chakraborty",
    author_email="pranay.chakraborty.personal@gmail.com",
    description="Per-pixel seasonal trend maps from gridded climate data",
    long_description=long_description,
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    include_package_data=True,
    install_requires=[
        "xarray",
        "dask",
        "distributed",
        "netCDF4",
        "bottleneck",
        "numpy",
        "pandas",
        "scipy",
    ],
    extras_require={
        "dev": [
            "pytest",
            "pytest-mock",
            "pytest-cov",
            "flake8",
            "mypy",
            "black",
            "isort",
            "pre-commit",
            "tox",
            "build",
            "twine",
        ],
    },
    python_requires=">=3.11",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Operating System :: OS Independent",
        "Topic :: Scientific/Engineering :: Atmospheric Science",
    ],
)

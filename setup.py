"""
Installs bayesgraph
"""

import re

from setuptools import find_packages, setup


# Get package information
def get_package_info():
    """
    Gets version information for the installation.
    """
    # Set up variables
    package_version = None

    # Open the file containing version info
    with open("bayesgraph/__init__.py", "r", encoding="utf-8") as file:
        for line in file:
            # Check version
            if match_obj := re.match(r"__version__.+([0-9]+\.[0-9]+\.[0-9]+)", line):
                package_version = match_obj.group(1)

    # Checks on variables
    if package_version is None:
        raise IOError("Could not find information on version.")

    return package_version


# Run setup
setup(
    name="bayesgraph",
    version=get_package_info(),
    description=(
        "Probabilistic graphical models with forward-mode differentiation and "
        "Metropolis-Hastings sampling"
    ),
    python_requires=">=3.10",
    packages=find_packages(include=["bayesgraph", "bayesgraph.*"]),
    install_requires=["numpy", "scipy", "typeguard", "tqdm", "xarray"],
    extras_require={"test": ["pytest", "torch"]},
)

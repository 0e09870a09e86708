# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Generate a dostorage package that can be deployed onto droplets.
"""

import re

from setuptools import setup, find_packages

with open("README.rst") as readme:
    description = readme.read()

with open("dostorage/_version.py") as version_file:
    (version,) = re.findall(
        r'^__version__ = "([^"]+)"$', version_file.read(), re.MULTILINE)


def parse_requirements(requirements_file, dependency_links):
    """
    Parse a requirements file.

    Environment markers are kept for setuptools to evaluate.

    ``--find-links`` lines will be added to the supplied ``dependency_links``
    list.
    """
    requirements = []
    with open(requirements_file) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith('#'):
                continue
            elif line.startswith('--find-links'):
                link = line.split(None, 1)[1]
                dependency_links.append(link)
            else:
                requirements.append(line)
    return requirements

# Parse the ``.in`` files. This will allow the dependencies to float when
# dostorage is installed using ``pip install .``.
dependency_links = []
install_requires = parse_requirements(
    "requirements/dostorage.txt.in",
    dependency_links,
)
dev_requires = parse_requirements(
    "requirements/dostorage-dev.txt.in",
    dependency_links,
)

setup(
    # This is the human-targetted name of the software being packaged.
    name="dostorage",
    # This is a string giving the version of the software being packaged.  For
    # simplicity it should be something boring like X.Y.Z.
    version=version,
    # This identifies the creators of this software.  This is left symbolic for
    # ease of maintenance.
    author="ClusterHQ Team",
    # This is contact information for the authors.
    author_email="support@clusterhq.com",
    # Here is a website where more information about the software is available.
    url="https://clusterhq.com/",

    # A short identifier for the license under which the project is released.
    license="Apache License, Version 2.0",

    # Some details about what dostorage is.  Synchronized with the README.rst
    # to keep it up to date more easily.
    long_description=description,

    packages=find_packages(include=('dostorage', 'dostorage.*')),

    package_data={
        # These files are used by the Docker plugin API:
        'dostorage.dockerplugin': ['schema/*.yml'],
    },

    entry_points={
        # These are the command-line programs we want setuptools to install.
        'console_scripts': [
            'dostorage-docker-plugin = ' +
            'dostorage.dockerplugin._script:docker_plugin_main',
        ],
    },

    python_requires=">=3.8",

    install_requires=install_requires,

    extras_require={
        # This extra is for developers who need to work on dostorage itself.
        "dev": dev_requires,
    },

    # Duplicate dependency links may have been added from different
    # requirements files.
    dependency_links=list(set(dependency_links)),

    # Some "trove classifiers" which are relevant.
    classifiers=[
        "License :: OSI Approved :: Apache Software License",
        "Programming Language :: Python :: 3",
        ],
    )

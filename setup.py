import os.path
import pathlib
from os import path

from setuptools import setup

from cwlbuilder.version import VERSION

this_directory = path.abspath(path.dirname(__file__))
with open(path.join(this_directory, "README.md"), encoding="utf-8") as f:
    long_description = f.read()
with open(os.path.join(pathlib.Path(__file__).parent, "requirements.txt")) as f:
    install_requires = f.read().splitlines()
with open(os.path.join(pathlib.Path(__file__).parent, "test-requirements.txt")) as f:
    tests_require = f.read().splitlines()

setup(
    name="cwlbuilder",
    version=VERSION,
    packages=[
        "cwlbuilder",
        "cwlbuilder.config",
        "cwlbuilder.core",
        "cwlbuilder.cwl",
        "cwlbuilder.runner",
    ],
    package_data={
        "cwlbuilder.config": ["schemas/v1.0/*.json"],
        "cwlbuilder.cwl": ["templates/*.jinja2"],
        "cwlbuilder.runner": ["schemas/*.json", "templates/*.jinja2"],
    },
    include_package_data=True,
    description="Build Common Workflow Language tools and workflows in Python",
    long_description=long_description,
    long_description_content_type="text/markdown",
    install_requires=install_requires,
    extras_require={
        "cwltool": ["cwltool"],
        "test": tests_require,
    },
    tests_require=tests_require,
    python_requires=">=3.10, <4",
    entry_points={
        "console_scripts": [
            "cwlbuilder=cwlbuilder.main:run",
        ]
    },
    zip_safe=False,
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: Science/Research",
        "Operating System :: POSIX",
        "Operating System :: MacOS",
        "Programming Language :: Python :: 3.10",
        "Topic :: Scientific/Engineering",
        "Topic :: Scientific/Engineering :: Bio-Informatics",
    ],
)

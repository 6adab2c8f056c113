from configparser import ConfigParser
from typing import List

from setuptools import setup


with open("README.md", "r") as fd:
    long_description = fd.read()


def get_dependencies(section: str) -> List[str]:
    pipfile = ConfigParser()
    assert pipfile.read("Pipfile"), "Could not read Pipfile"
    requirements = []
    for name, spec in pipfile[section].items():
        spec = spec.strip('"')
        requirements.append(name if spec == "*" else f"{name}{spec}")
    return requirements


setup(
    name="passvault",
    version="0.4.0",
    author="Dorian Jaminais",
    author_email="sharedvault@jaminais.fr",
    description="passvault is a pass-compatible password manager: a git "
    "versioned tree of OpenPGP encrypted secrets.",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/nanassito/passvault",
    packages=["passvault", "passvault.crypto"],
    entry_points={"console_scripts": ["passvault = passvault.cli:main"]},
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: Public Domain",
        "Operating System :: POSIX",
    ],
    python_requires=">=3.8",
    install_requires=get_dependencies("packages"),
    extras_require={"test": get_dependencies("dev-packages")},
)

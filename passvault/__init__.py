"""A pass compatible password manager: a git versioned tree of OpenPGP
encrypted secrets."""

__version__ = "0.4.0"

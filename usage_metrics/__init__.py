"""Usage metrics reporting: embeddable client and allow-listing collector."""

__version__ = "0.1.0"

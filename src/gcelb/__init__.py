"""gcelb - logical load balancers composed from Google Compute Engine target pools."""

__version__ = "0.1.0"

"""Order API library: upstream client, fault tolerance and webhook intake."""

__version__ = "1.0.0"

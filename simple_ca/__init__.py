"""simple-ca: a private root/intermediate CA for development TLS certificates."""

__version__ = "0.1.0"

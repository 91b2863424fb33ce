"""rke2boot - single-node RKE2 server bootstrap."""

__version__ = "0.1.0"

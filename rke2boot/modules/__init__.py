"""
Host-level building blocks used by the bootstrap.
"""

"""
Ripple

Operational core of the Ripple semantic-caching proxy: configuration,
error taxonomy, metrics, health probes, and server bootstrap.
"""

__version__ = "0.1.0"

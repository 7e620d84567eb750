"""Client for the clinic management backend: session, gateway and services."""

__version__ = "0.1.0"

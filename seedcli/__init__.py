"""seed — build, run, validate and publish Seed compliant algorithm images."""

__version__ = "0.3.0"

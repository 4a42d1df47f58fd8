"""
Asobi - disposable AWS development environments.

This package provisions and tears down a fixed VPC, instance and load
balancer topology per application, with rollback on failure.
"""

__version__ = "0.1.0"

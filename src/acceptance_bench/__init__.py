"""Behave-driven black-box acceptance harness for the deployed microservice system."""

__version__ = "0.1.0"

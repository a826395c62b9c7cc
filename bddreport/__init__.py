"""Gherkin feature models, step definitions and result formatters for BDD test runs."""

__version__ = "0.1.0"
"""Kiln Template: built and rendered template object."""

from kiln.template.core import Template

__all__ = ["Template"]

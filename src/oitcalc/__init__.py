"""Oral immunotherapy dosing protocol calculator."""

__version__ = "0.1.0"

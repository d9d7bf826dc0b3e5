"""Headless rendering and re-export of annotated Newick and Nexus trees."""

__version__ = "0.1.0"

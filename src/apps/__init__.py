"""
Applications Package

Enthält die Kommandozeilen-Schnittstelle der Enrichment Pipeline.
"""

from .cli import cli, main

__all__ = ["cli", "main"]

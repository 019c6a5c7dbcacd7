"""
Transfer Enrichment Pipeline
Reichert Transfer-Datensätze mit Spielerdaten aus API-Football an
"""

__version__ = "1.0.0"
__author__ = "Sports Data Team"

# NOTE:
# Avoid importing heavy modules (like configuration) at package import time to
# keep "import src" lightweight and side-effect free for unit tests.

__all__ = []

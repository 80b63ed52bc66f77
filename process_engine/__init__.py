"""
Process Engine

Composes tasks into sequential and concurrent processes, drives them through
a work queue and persists progress so execution resumes after a crash or is
spread across workers.
"""

__version__ = "1.0.0"

"""
Uma Engine - Character Build Interchange

Moves trained-horse builds between JSON files, PNG "uma cards" carrying the
build as hidden metadata, and screenshots read by a vision model.
"""

__version__ = "0.1.0"

"""
Volumio bridge — attribute model and command surface for a Volumio player.
"""

__version__ = "1.6.0"

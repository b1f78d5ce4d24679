"""
Find and remove duplicate channels in Enigma2 settings.

Deutsch:
    Doppelte Sender in Enigma2-Settings finden und entfernen.
"""

__version__ = "1.0.0"

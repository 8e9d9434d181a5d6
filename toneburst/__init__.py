"""
Tone burst generator and analyzer for free-field frequency response
and polar pattern measurements.
"""

__version__ = "0.1.0"

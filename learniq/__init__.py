"""
LearnIQ

Adaptive difficulty engine and gamification scoring service.
"""

__version__ = "1.0.0"

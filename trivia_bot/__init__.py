"""
Trivia Quiz Bot: timed single-player trivia rounds on Discord, backed by the
Open Trivia Database.
"""

__version__ = "1.0.0"

"""
burnin_kit - disk burn-in safety validation and background supervision.
"""

__version__ = '1.0.0'

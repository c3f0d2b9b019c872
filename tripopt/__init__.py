"""
tripopt — multi-day itinerary optimizer.

    from tripopt.main import optimize
"""

__version__ = "1.0.0"

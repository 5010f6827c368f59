"""Sleeper rewards engine: nightly points, seasons and daily SLEEP distribution"""
__version__ = "0.1.0"

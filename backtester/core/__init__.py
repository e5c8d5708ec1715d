"""backtester.core

Configuration, logging and the error taxonomy shared by every surface.
"""

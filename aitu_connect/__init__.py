"""
aitu-connect chat client

Python client for the aitu-connect social platform's messaging service.
"""

__version__ = "0.1.0"

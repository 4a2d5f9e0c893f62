"""
AppHost: a small application shell that launches a bundled helper executable,
forwards its output to the system log and waits for it to exit.
"""

__version__ = "0.1.0"

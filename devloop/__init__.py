"""
devloop - A development-mode supervisor for a single HTTP service.

Watches dependency descriptor files, reinstalls dependencies when they
change, and keeps the server process running, restarting it after every
exit.
"""

__version__ = "0.1.0"

"""
Personal task manager: a FastAPI backend (`todoapp.api`) and an offline-first
sync client (`todoapp.client`).
"""

__version__ = "0.1.0"

"""
Healthcare Scheduling API

A FastAPI backend for patients, doctors and administrators: user accounts,
appointments, direct messages and reminders behind JWT authentication with
refresh token rotation and a cache-aside read layer.
"""

__version__ = "1.0.0"

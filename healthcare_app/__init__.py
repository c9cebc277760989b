"""
Healthcare Appointment System

A FastAPI service for booking doctor appointments, with JWT access/refresh
authentication, role-based access for patients, doctors and administrators,
per-doctor weekly availability, and medical records.
"""

__version__ = "1.0.0"

"""
Test suite for the Healthcare Appointment System.

API tests run against an in-memory SQLite database through FastAPI's
TestClient; scheduling and token tests exercise the services directly.
"""
import os

# Set environment for testing
os.environ["TESTING"] = "1"

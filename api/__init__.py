"""
API Layer for the Face Access System

This package provides the FastAPI-based backend that exposes:
- POST /register and POST /recognize, the capture client's protocol
- REST endpoints for user management and health checks

The backend owns the enrollment store and the matcher.
"""

"""
Application FastAPI unique, construite par la factory.
"""
from salon_booking.app_setup.factory import create_app

app = create_app()

"""
salon_booking: checkout public et moteur de disponibilités des salons.
"""

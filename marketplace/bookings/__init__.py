"""
Module 'bookings': réservations créées à partir des sessions de checkout payées.
"""

from .models import Booking, BookingPayment, CustomerSnapshot

__all__ = ["Booking", "BookingPayment", "CustomerSnapshot"]

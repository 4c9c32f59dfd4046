"""
Flightbook: airline reservation core.

Turns a flight schedule and fare catalog into searchable offers, prices
them, reserves seats and issues bookings and tickets:
1. Availability search over direct and nearby airports
2. Dynamic fare pricing with taxes, fees and promotional codes
3. Bookings, ticketing and seat assignment on an atomic inventory ledger
"""

__version__ = "0.1.0"

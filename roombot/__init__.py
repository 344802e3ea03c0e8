"""
Roombot Meeting Room Booking Package

This package contains the conversational meeting room booking service.

Subpackages:
    shared: Common utilities (Redis client, key/value store abstraction)
    booking: Booking session engine (room catalog, slot calendar, booking store,
             availability engine, session FSM, conversation dispatcher, HTTP app)
"""

__all__ = ["shared", "booking"]

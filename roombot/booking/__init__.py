"""
Roombot Meeting Room Booking Service - Conversational room booking for chat channels

Users pick a meeting room, then give a date, a time slot, a meeting title and
an organizer over several chat turns. The per-user session state machine
collects these fields, and the booking store makes the final conflict
decision so that two confirmed bookings for the same room never overlap.

Key Features:
- 4-step booking session per user (date, time, title, organizer)
- Date parsing for today/tomorrow (English and Thai), DD/MM/YYYY and YYYY-MM-DD
- Fixed daily slot grid with live availability re-checks
- Overlap-safe booking creation under a per-(room, date) lock
- Owner-only booking cancellation
- Room status and "my bookings" views
- In-memory or Redis-backed storage with session TTL

Architecture:
- FastAPI web framework for REST endpoints
- Conversation dispatcher decoding events into tagged actions
- FSM Manager for the booking session flow
- Booking store and availability engine over a key/value store
- Pydantic models for API contracts
"""

__version__ = "1.0.0"

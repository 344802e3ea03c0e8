"""
Tests for Roombot Meeting Room Booking Service

Test suite covering:
- Session state machine flow and re-prompts
- Booking store conflict checks and concurrency
- Date, time and text validation
- Event decoding and reply rendering
- API endpoints

Run tests with:
    python -m pytest roombot/booking/tests/ -v
    python -m pytest roombot/booking/tests/test_fsm_flow.py -v
    python -m pytest roombot/booking/tests/test_api_integration.py -v
"""

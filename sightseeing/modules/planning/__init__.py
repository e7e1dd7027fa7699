"""modules/planning — Availability, scheduling and route planning."""

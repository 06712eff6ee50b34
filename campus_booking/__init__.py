"""Scheduling and booking-conflict engine for the campus tutoring platform."""

"""Jarwik: a conversational assistant backend for email, SMS, calls and calendar."""

__version__ = "0.1.0"

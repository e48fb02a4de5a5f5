"""Intake Gateway: authenticated voice-agent webhooks, call classification and staff alerts"""

__version__ = "2.0.0"

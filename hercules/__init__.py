"""Hercules active schedule engine.

Resolves which workout (or rest) is due on a calendar day for the user's
active schedule, and keeps that schedule consistent with the workout catalog.
"""

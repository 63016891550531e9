"""Threadline backend package."""

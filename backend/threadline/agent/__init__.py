"""Agent module for AI reply and study-artifact generation.

Provides:
    - ReplyGenerator: Interface used by the reply scheduler.
    - MockAgent: Templated replies and fixed-shape feature results for testing.
"""

"""
FinAssist: personal finance assistant client.

Streams replies from the financial chat function, keeps the conversation
state for a chat view, and talks to the speech, categorization and
insights functions of the same backend.
"""

__version__ = "0.1.0"

"""
TicketVault - resolves the event tickets a wallet currently owns.
"""

__version__ = "0.1.0"

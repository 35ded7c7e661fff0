"""
Quote Dispatch - quote lifecycle and dispatch orchestration core

Drives an RFQ through its status machine, fans it out to manufacturing
providers, collects offers and records exactly one winner.

Fun fact: The busiest job shops answer dozens of RFQs a day and win maybe one
in five - which is why nobody wants to be asked the same question twice!
"""

from quote_dispatch.desk import QuoteDesk

__version__ = "0.1.0"
__all__ = ["QuoteDesk", "__version__"]

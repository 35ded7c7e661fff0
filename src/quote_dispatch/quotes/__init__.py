"""
Quotes - the RFQ aggregate and its status machine
"""

"""
Offers - intake, validation and completeness scoring
"""

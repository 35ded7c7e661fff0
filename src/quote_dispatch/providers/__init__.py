"""
Providers - normalisation, eligibility and mismatch detection
"""

"""
Capacity - weekly provider capacity and request throttling
"""

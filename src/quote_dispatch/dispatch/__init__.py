"""
Dispatch - per-provider destinations and their delivery state
"""

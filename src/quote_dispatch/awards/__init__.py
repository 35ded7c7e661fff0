"""
Awards - single-winner selection and award feedback
"""

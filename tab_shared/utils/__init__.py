"""
Utilities: exceptions, money helpers, API schemas.
"""

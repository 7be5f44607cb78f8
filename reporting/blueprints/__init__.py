"""
Committee Reporting Platform
Blueprint registry.
"""

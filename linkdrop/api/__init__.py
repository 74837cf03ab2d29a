"""
API module containing the HTTP routes.
"""

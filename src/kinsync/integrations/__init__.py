"""
API clients for the two synced systems and the shared HTTP transport.
"""

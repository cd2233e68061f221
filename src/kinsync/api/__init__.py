"""
HTTP trigger and status API.
"""

"""
Object storage adapters and the upload throttler in front of them.
"""

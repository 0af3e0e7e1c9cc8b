"""
HTTP routers. Each module owns one resource and maps domain errors to HTTP.
"""

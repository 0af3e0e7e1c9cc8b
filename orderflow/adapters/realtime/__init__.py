"""
In-process realtime fan-out: subscriber registries and the SSE transport.
"""

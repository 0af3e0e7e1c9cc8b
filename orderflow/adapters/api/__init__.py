"""
Primary (driving) adapter: the FastAPI application, its routers and the
operator/customer identity dependencies.
"""

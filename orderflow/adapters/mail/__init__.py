"""
Decision notification transport (SMTP) and its Jinja2 templates.
"""

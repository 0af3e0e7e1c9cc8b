"""
Background maintenance: the decision email sweep and stale upload
reconciliation, run inside the API process or as a standalone worker.
"""

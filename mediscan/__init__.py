"""
MediScan backend package.

Provides a FastAPI application for uploading medical images, running the
(simulated) analysis workflow and reading results back, on top of pluggable
database, object storage and identity backends.
"""

"""
Serving — FastAPI application exposing upload, query and job status.
"""

"""
Serving — FastAPI application exposing similarity search over HTTP.
"""

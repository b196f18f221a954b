"""
Stand-Up API - FastAPI application
"""

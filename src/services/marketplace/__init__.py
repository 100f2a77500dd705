# src/services/marketplace/__init__.py
"""
HTTP API маркетплейса сопровождения и встреч в аэропорту.
"""

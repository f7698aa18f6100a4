# shellcue/utils/__init__.py
"""
Utility helpers for shellcue.
"""

"""
Test doubles
"""

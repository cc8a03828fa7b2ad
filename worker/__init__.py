"""
Transcode pipeline
"""

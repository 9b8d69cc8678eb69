"""
Capture log and configuration store
"""

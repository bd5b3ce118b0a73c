"""
Travel Data Store
"""

"""
Prefect Workflows
"""

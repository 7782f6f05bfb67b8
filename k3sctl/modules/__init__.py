"""
Cluster management modules.
"""

"""
Operator CLI for the trail sync client.
"""

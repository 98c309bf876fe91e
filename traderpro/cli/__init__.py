"""
Operator CLI
"""

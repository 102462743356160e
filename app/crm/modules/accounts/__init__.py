"""
Accounts module: login identities and their roles (admin-managed, self-service for owners).
"""

"""
Infrastructure Package
======================

Clients for the service's external systems: database, completion gateway
and search index.
"""

"""Runtime - Monitoring of cache behaviour.

Contains: observability (structured logging).
"""

"""Domain Interfaces (Ports):

Defines the contracts that infrastructure components implement. The queue
depends on these, not on concrete caches or HTTP clients.
"""

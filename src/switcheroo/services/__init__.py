"""Service layer — rule store, port allocator, and handover coordinator.

Services may import from domain and infrastructure layers.
They must never import from commands or output.
"""

"""Platform adapter implementations.

Adapters are imported lazily by the runtime so a missing optional library
only disables its own platform.
"""

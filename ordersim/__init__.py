"""
ordersim package initializer.

This package contains the order lifecycle simulator: random processes and
the adaptive entropy source, the 12-stage pipeline model, the event list,
the engine with its run controls, fleet metrics, the order-store/catalog
collaborators, and the live playback host.
"""
__all__ = [
    "distributions", "entropy", "stages", "entities", "events",
    "metrics", "store", "config", "engine", "playback", "simulation",
]

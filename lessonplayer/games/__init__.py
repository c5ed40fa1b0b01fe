"""Arcade game runtime used by the real-time step types.

The games here know nothing about view blocks; step renderers observe them
through `on_update` and paint the container themselves.
"""

# ctaflow/__init__.py
"""CTA flow builder core: graph model, validation, publish policy, layout and draft recovery."""

__version__ = "1.0.0"

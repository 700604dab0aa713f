"""Ralph loop: checklist-driven content generation harness."""

__version__ = "0.1.0"

"""Architecture planner: turn business requirements into architectural plans."""

__version__ = "0.1.0"

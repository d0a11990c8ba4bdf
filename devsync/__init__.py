"""Development request <-> GitHub Issues synchronizer"""

__version__ = "1.0.0"

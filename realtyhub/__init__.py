"""RealtyHub: schema-driven models for a real-estate listing backend"""

__version__ = "1.0.0"

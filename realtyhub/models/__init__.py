"""Model configurations for the RealtyHub entity types"""

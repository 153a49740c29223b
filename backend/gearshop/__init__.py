"""
GearShop - Gaming gear storefront backend with AI shopping assistant
"""
__version__ = "1.0.0"

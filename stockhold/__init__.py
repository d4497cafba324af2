"""
stockhold - checkout stock reservation service

Blocks stock while a payment is in flight, then commits or releases it.
"""
__version__ = "1.0.0"

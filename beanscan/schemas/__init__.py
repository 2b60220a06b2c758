"""
BeanScan Backend - Request/Response Schemas Package
"""

"""
BeanScan Backend - Middleware Package
=======================================

Cross-cutting request handling, outermost first:

    Request → [Request ID] → [Rate Limit] → [Access Log] → [GZip] → [CORS] → Route

The request ID is assigned before anything can reject the request, so even
429 responses carry X-Request-ID.
"""

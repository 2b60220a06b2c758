"""
BeanScan Backend - API Routes Package
=======================================

Route Inventory:
    - ocr.py:     POST /api/ocr                    (recognize text)
                  POST /api/ocr-correct            (recognize, then correct)
                  POST /api/ocr/normalize-image    (preview normalized image)
    - health.py:  GET  /health                     (service health check)
"""

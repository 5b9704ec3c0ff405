"""
Vertex AI Imagen 代理服务
"""

__version__ = "1.0.0"

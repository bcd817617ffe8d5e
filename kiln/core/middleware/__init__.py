from kiln.core.middleware.base import Middleware, MiddlewarePipeline, NextHandler
from kiln.core.middleware.body import BodyParserMiddleware
from kiln.core.middleware.compression import CompressionMiddleware
from kiln.core.middleware.cors import CORSConfig, CORSMiddleware
from kiln.core.middleware.logging import LoggingMiddleware
from kiln.core.middleware.proxy import ProxyMiddleware

__all__ = [
    "BodyParserMiddleware",
    "CORSConfig",
    "CORSMiddleware",
    "CompressionMiddleware",
    "LoggingMiddleware",
    "Middleware",
    "MiddlewarePipeline",
    "NextHandler",
    "ProxyMiddleware",
]

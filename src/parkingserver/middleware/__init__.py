"""
Middleware applied around the router: access logging and CORS.
"""

from .base import Middleware, MiddlewarePipeline, NextHandler
from .cors import CORSConfig, CORSMiddleware
from .logging import LoggingMiddleware, RequestLog

__all__ = [
    "Middleware",
    "MiddlewarePipeline",
    "NextHandler",
    "CORSConfig",
    "CORSMiddleware",
    "LoggingMiddleware",
    "RequestLog",
]

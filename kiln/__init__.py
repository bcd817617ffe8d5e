from kiln.bootstrap.main import run
from kiln.core.app import App
from kiln.core.database import Database
from kiln.core.model.request import Request
from kiln.core.model.response import Response, json_response
from kiln.core.router import Router
from kiln.core.server import Server

__all__ = [
    "App",
    "Database",
    "Request",
    "Response",
    "Router",
    "Server",
    "json_response",
    "run",
]

"""
minihttpd - a minimal static file HTTP/1.1 server.

Serves GET and HEAD for single-segment paths under the document root,
one connection per thread or one connection per forked process.
"""

__version__ = "1.0.0"

"""iTop API client.

Asynchronous client for the iTop REST/JSON web services: authentication,
CRUD and lifecycle operations, and normalization of the response envelope.
"""

__version__ = "0.1.0"

"""Origin transport for cachegen.

The engine reaches the origin only through the :class:`Transport` protocol:
``await transport.fetch(request)`` returns a
:class:`~cachegen.models.ResourceRecord` or raises
:class:`~cachegen.exceptions.NetworkError`. HTTP error statuses are *not*
errors at this layer; they come back as records and the engine decides what
to do with them.

Classes:
    :class:`Transport` -- structural interface used by the engine.
    :class:`HttpTransport` -- implementation backed by :class:`httpx.AsyncClient`.
    :class:`OfflineTransport` -- always raises, for forced offline runs.

Example::

    from cachegen.transport import HttpTransport

    async with HttpTransport(config) as transport:
        record = await transport.fetch(Request(url="https://app.example.com/"))
"""

from cachegen.transport.base import OfflineTransport, Transport
from cachegen.transport.http import HttpTransport

__all__ = ["Transport", "HttpTransport", "OfflineTransport"]

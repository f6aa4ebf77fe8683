"""requests Session whose in-flight calls can be aborted from another thread.

requests has no cancellation: a worker blocked in recv() stays there until the
server answers or the read timeout fires. The connection pools of this session
use a connection class that registers every socket it opens, and abort() shuts
those sockets down. The blocked recv() then returns and the request fails with
requests.ConnectionError.
"""
from __future__ import annotations

import socket
import threading
import weakref
from typing import Any, Type

import requests
from requests.adapters import HTTPAdapter

from ..logging_util import get_logger

logger = get_logger(__name__)

class AbortableHTTPAdapter(HTTPAdapter):
    def __init__(self, *args: Any, **kwargs: Any):
        # HTTPAdapter.__init__ calls init_poolmanager, which needs these
        self._live: "weakref.WeakSet[Any]" = weakref.WeakSet()
        self._managers: "weakref.WeakSet[Any]" = weakref.WeakSet()
        self._lock = threading.Lock()
        super().__init__(*args, **kwargs)

    def init_poolmanager(self, *args: Any, **kwargs: Any) -> None:
        super().init_poolmanager(*args, **kwargs)
        self._install_tracking(self.poolmanager)

    def proxy_manager_for(self, proxy: str, **proxy_kwargs: Any) -> Any:
        manager = super().proxy_manager_for(proxy, **proxy_kwargs)
        self._install_tracking(manager)
        return manager

    def _install_tracking(self, manager: Any) -> None:
        if manager in self._managers:
            return
        pools = manager.pool_classes_by_scheme
        manager.pool_classes_by_scheme = {scheme: self._tracking_pool(cls) for scheme, cls in pools.items()}
        self._managers.add(manager)

    def _tracking_pool(self, pool_cls: Type) -> Type:
        track = self._track

        class TrackingConnection(pool_cls.ConnectionCls):
            def connect(self):
                super().connect()
                track(self)

        return type(pool_cls.__name__, (pool_cls,), {"ConnectionCls": TrackingConnection})

    def _track(self, conn: Any) -> None:
        with self._lock:
            self._live.add(conn)

    def abort(self) -> int:
        """Shut down every socket this adapter opened. Returns how many were interrupted."""
        with self._lock:
            conns = list(self._live)
            self._live.clear()

        interrupted = 0
        for conn in conns:
            sock = getattr(conn, "sock", None)
            if sock is None:
                continue
            try:
                sock.shutdown(socket.SHUT_RDWR)
                interrupted += 1
            except OSError as e:
                logger.debug("socket already closed: %s", e)
        return interrupted

class AbortableSession(requests.Session):
    def __init__(self):
        super().__init__()
        self._transport = AbortableHTTPAdapter()
        self.mount("https://", self._transport)
        self.mount("http://", self._transport)

    def abort(self) -> int:
        return self._transport.abort()

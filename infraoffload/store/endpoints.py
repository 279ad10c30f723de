"""Persistent store of pod endpoints keyed by pod IP address."""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path

from infraoffload.store.models import (
    DEFAULT_STORE_DIR,
    EndPoint,
    StoreError,
    _encode,
    _is_valid_ip,
    _is_valid_mac,
    _load_records,
    _prepare_dir,
    _read_store_file,
    _snapshot,
    _write_store_file,
)

log = logging.getLogger(__name__)


class EndPointStore:
    """Pod endpoints held in memory and synced to ``cni_db.json``."""

    FILE_NAME = "cni_db.json"

    def __init__(self, store_dir: str | os.PathLike = DEFAULT_STORE_DIR) -> None:
        self.store_dir = Path(store_dir)
        self.path = self.store_dir / self.FILE_NAME
        self._entries: dict[str, EndPoint] = {}
        self._lock = threading.Lock()

    def is_empty(self) -> bool:
        return not self._entries

    def init(self, set_fwd_pipe: bool) -> None:
        """Load saved entries; when the pipeline was just set, start empty."""
        _prepare_dir(self.store_dir)
        data = _read_store_file(self.path, truncate=set_fwd_pipe)
        if not data:
            return
        loaded = _load_records(data, self.path, EndPoint.from_dict)
        with self._lock:
            self._entries.update(loaded)

    def write(self, endpoint: EndPoint) -> None:
        if not _is_valid_ip(endpoint.pod_ip_address):
            raise StoreError(f"invalid IP address {endpoint.pod_ip_address}")
        if not _is_valid_mac(endpoint.pod_mac_address):
            raise StoreError(f"invalid MAC address {endpoint.pod_mac_address}")
        with self._lock:
            self._entries[endpoint.pod_ip_address] = _snapshot(endpoint)

    def delete(self, endpoint: EndPoint) -> None:
        if not _is_valid_ip(endpoint.pod_ip_address):
            raise StoreError(f"invalid IP address {endpoint.pod_ip_address}")
        with self._lock:
            self._entries.pop(endpoint.pod_ip_address, None)

    def get(self, endpoint: EndPoint) -> EndPoint | None:
        """Return the stored endpoint with the same IP, or None."""
        if not _is_valid_ip(endpoint.pod_ip_address):
            log.error("Invalid IP Address %s", endpoint.pod_ip_address)
            return None
        found = self._entries.get(endpoint.pod_ip_address)
        return _snapshot(found) if found is not None else None

    def sync(self) -> None:
        """Write every entry to the store file."""
        with self._lock:
            payload = _encode(self._entries)
        _write_store_file(self.path, payload)
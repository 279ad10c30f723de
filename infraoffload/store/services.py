"""Persistent store of services keyed by cluster IP, protocol and port."""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path

from infraoffload.store.models import (
    DEFAULT_STORE_DIR,
    Service,
    StoreError,
    _encode,
    _is_valid_ip,
    _load_records,
    _prepare_dir,
    _read_store_file,
    _snapshot,
    _write_store_file,
)

log = logging.getLogger(__name__)


def service_key(service: Service) -> str:
    """Return the ``ip:proto:port`` key of a service."""
    if not service.cluster_ip or not service.proto:
        raise StoreError("service needs a cluster IP and a protocol")
    if not 0 <= service.port <= 65536:
        raise StoreError(f"service port {service.port} out of range")
    return f"{service.cluster_ip}:{service.proto}:{service.port}"


class ServiceStore:
    """Services held in memory and synced to ``services_db.json``."""

    FILE_NAME = "services_db.json"

    def __init__(self, store_dir: str | os.PathLike = DEFAULT_STORE_DIR) -> None:
        self.store_dir = Path(store_dir)
        self.path = self.store_dir / self.FILE_NAME
        self._entries: dict[str, Service] = {}
        self._lock = threading.Lock()

    def is_empty(self) -> bool:
        return not self._entries

    def init(self, set_fwd_pipe: bool) -> None:
        """Load saved services; when the pipeline was just set, start empty."""
        _prepare_dir(self.store_dir)
        data = _read_store_file(self.path, truncate=set_fwd_pipe)
        if not data:
            return
        loaded = _load_records(data, self.path, Service.from_dict)
        with self._lock:
            self._entries.update(loaded)

    def write(self, service: Service) -> None:
        if not _is_valid_ip(service.cluster_ip):
            raise StoreError(f"invalid cluster IP {service.cluster_ip}")
        key = service_key(service)
        with self._lock:
            self._entries[key] = _snapshot(service)

    def delete(self, service: Service) -> None:
        if not _is_valid_ip(service.cluster_ip):
            raise StoreError(f"invalid cluster IP {service.cluster_ip}")
        key = service_key(service)
        with self._lock:
            self._entries.pop(key, None)

    def get(self, service: Service) -> Service | None:
        """Return the stored service with the same key, or None."""
        if not _is_valid_ip(service.cluster_ip):
            log.error("Invalid cluster IP %s", service.cluster_ip)
            return None
        try:
            key = service_key(service)
        except StoreError:
            return None
        found = self._entries.get(key)
        return _snapshot(found) if found is not None else None

    def update(self, service: Service) -> None:
        """Add the service's new endpoints to the stored entry."""
        entry = self.get(service)
        if entry is None:
            raise StoreError(f"service {service.cluster_ip} not found")
        for ip_addr, endpoint in service.service_endpoints.items():
            entry.service_endpoints.setdefault(ip_addr, endpoint)
        self.write(entry)

    def sync(self) -> None:
        """Write every service to the store file."""
        with self._lock:
            payload = _encode(self._entries)
        _write_store_file(self.path, payload)
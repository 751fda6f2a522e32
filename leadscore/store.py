import copy
import json
import os
import re
import threading
from typing import Any, Dict, Optional, Tuple
from .config import data_dir
from .exceptions import InvalidTenantError


_TENANT_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def _empty_doc() -> Dict[str, Any]:
    return {"versions": [], "rules": []}


class ConfigStore:
    """JSON document per tenant holding its version history and rules.

    Readers get deep copies out of an mtime-keyed cache. Writers must hold
    ``lock(tenant)`` around their read-modify-write.
    """

    def __init__(self, root: Optional[str] = None) -> None:
        self.root = root or data_dir()
        self._cache: Dict[str, Tuple[float, Dict[str, Any]]] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _path(self, tenant: str) -> str:
        if not _TENANT_RE.match(tenant or ""):
            raise InvalidTenantError(f"Invalid tenant id: {tenant!r}")
        return os.path.join(self.root, f"{tenant}.json")

    def lock(self, tenant: str) -> threading.Lock:
        self._path(tenant)
        with self._locks_guard:
            if tenant not in self._locks:
                self._locks[tenant] = threading.Lock()
            return self._locks[tenant]

    def load(self, tenant: str) -> Dict[str, Any]:
        path = self._path(tenant)
        if not os.path.exists(path):
            return _empty_doc()
        mtime = os.path.getmtime(path)
        cached = self._cache.get(path)
        if cached and cached[0] == mtime:
            return copy.deepcopy(cached[1])
        with open(path, "r", encoding="utf-8") as f:
            doc = json.load(f)
        doc.setdefault("versions", [])
        doc.setdefault("rules", [])
        self._cache[path] = (mtime, doc)
        return copy.deepcopy(doc)

    def write(self, tenant: str, doc: Dict[str, Any]) -> None:
        path = self._path(tenant)
        os.makedirs(self.root, exist_ok=True)
        tmp = f"{path}.tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(doc, f, indent=2)
        os.replace(tmp, path)
        # drop instead of refreshing: mtime resolution can hide back-to-back writes
        self._cache.pop(path, None)

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union
from .config import DEFAULT_CONFIG, DEFAULT_RULES, history_limit
from .exceptions import ConfigValidationError, VersionNotFoundError
from .models import ConfigVersion, ScoringConfig
from .rulebook import list_rules, new_rule_record
from .scoring import Rule
from .store import ConfigStore
from .validation import validate_config


logger = logging.getLogger("leadscore")


class ConfigVersioner:
    """Append-only config history for one tenant.

    Every save and every rollback appends a new version; existing entries
    are never modified or removed.
    """

    def __init__(self, store: ConfigStore, tenant: str) -> None:
        self.store = store
        self.tenant = tenant

    def _versions(self) -> List[ConfigVersion]:
        doc = self.store.load(self.tenant)
        return [ConfigVersion.model_validate(v) for v in doc["versions"]]

    def _append_locked(self, doc: Dict[str, Any], config: ScoringConfig, created_by: str, action: Optional[str] = None) -> ConfigVersion:
        """Append a version to ``doc`` and write it; the caller holds the tenant lock."""
        previous = doc["versions"][-1]["version"] if doc["versions"] else 0
        action = action or ("update" if previous else "create")
        version = ConfigVersion(
            id=uuid.uuid4().hex,
            version=previous + 1,
            config=config,
            created_at=datetime.now(timezone.utc),
            created_by=created_by,
        )
        doc["versions"].append(version.model_dump(mode="json", by_alias=True))
        self.store.write(self.tenant, doc)
        logger.info(json.dumps({
            "event": f"config_{action}",
            "tenant": self.tenant,
            "version": version.version,
            "version_id": version.id,
            "created_by": created_by,
        }))
        return version

    def _append(self, config: ScoringConfig, created_by: str, action: Optional[str] = None) -> ConfigVersion:
        with self.store.lock(self.tenant):
            doc = self.store.load(self.tenant)
            return self._append_locked(doc, config, created_by, action)

    def save(self, config: Union[ScoringConfig, Mapping[str, Any]], created_by: str = "system") -> ConfigVersion:
        result = validate_config(config)
        if not result.valid:
            raise ConfigValidationError(result.errors)
        if not isinstance(config, ScoringConfig):
            config = ScoringConfig.model_validate(config)
        return self._append(config, created_by)

    def rollback(self, version_ref: str, created_by: str = "system") -> ConfigVersion:
        ref = str(version_ref)
        for version in self._versions():
            if version.id == ref or str(version.version) == ref:
                return self._append(version.config, created_by, "rollback")
        raise VersionNotFoundError(f"Config version '{ref}' not found")

    def history(self, limit: Optional[int] = None) -> List[ConfigVersion]:
        if limit is None:
            limit = history_limit()
        if limit <= 0:
            return []
        return list(reversed(self._versions()))[:limit]

    def current_version(self) -> Optional[ConfigVersion]:
        latest = self.history(1)
        return latest[0] if latest else None

    def current(self) -> Optional[ScoringConfig]:
        version = self.current_version()
        return version.config if version else None


def initialize_defaults(store: ConfigStore, tenant: str, created_by: str = "system") -> Tuple[ScoringConfig, List[Rule]]:
    """Write the default config and rules for a tenant that has none."""
    versioner = ConfigVersioner(store, tenant)
    with store.lock(tenant):
        doc = store.load(tenant)
        if doc["versions"]:
            config = ConfigVersion.model_validate(doc["versions"][-1]).config
        else:
            config = ScoringConfig.model_validate(DEFAULT_CONFIG)
            if not doc["rules"]:
                doc["rules"] = [new_rule_record(rule) for rule in DEFAULT_RULES]
            versioner._append_locked(doc, config, created_by)
    return config, list_rules(store, tenant)


def load_snapshot(store: ConfigStore, tenant: str, created_by: str = "system") -> Tuple[ScoringConfig, List[Rule]]:
    config = ConfigVersioner(store, tenant).current()
    if config is None:
        return initialize_defaults(store, tenant, created_by)
    return config, list_rules(store, tenant)


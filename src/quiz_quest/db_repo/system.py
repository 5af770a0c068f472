from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from typing import Any, Protocol

from quiz_quest.db_constants import APP_CONFIG_DEFAULTS, AUDIT_LIST_LIMIT, RULES_CONFIG_KEYS


class DbProtocol(Protocol):
    def _connect(self) -> sqlite3.Connection: ...
    def get_app_config(self) -> dict[str, Any]: ...
    def get_app_config_value(self, key: str) -> Any: ...


class SystemMixin:
    def get_app_config(self: DbProtocol) -> dict[str, Any]:
        config = dict(APP_CONFIG_DEFAULTS)
        with self._connect() as conn:
            rows = conn.execute("SELECT key, value_json FROM app_config").fetchall()
        for row in rows:
            key = str(row["key"])
            if key not in APP_CONFIG_DEFAULTS:
                continue
            try:
                config[key] = json.loads(str(row["value_json"]))
            except json.JSONDecodeError:
                continue
        return config

    def set_app_config(self: DbProtocol, updates: dict[str, Any], actor: str = "system", note: str | None = None) -> dict[str, Any]:
        """Store known keys and record one audit row per changed key. Unknown keys are ignored."""
        known = {k: v for k, v in updates.items() if k in APP_CONFIG_DEFAULTS}
        if not known:
            return self.get_app_config()
        now = datetime.now().isoformat()
        with self._connect() as conn:
            for key, value in known.items():
                conn.execute(
                    """
                    INSERT INTO app_config(key, value_json, updated_at, updated_by)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value_json=excluded.value_json,
                        updated_at=excluded.updated_at,
                        updated_by=excluded.updated_by
                    """,
                    (key, json.dumps(value), now, actor),
                )
                conn.execute(
                    """
                    INSERT INTO admin_audit_log(actor, action, target, payload_json, created_at)
                    VALUES (?, 'config.update', ?, ?, ?)
                    """,
                    (actor, key, json.dumps({"value": value, "note": note}), now),
                )
        return self.get_app_config()

    def get_app_config_value(self: DbProtocol, key: str) -> Any:
        config = self.get_app_config()
        return config.get(key, APP_CONFIG_DEFAULTS.get(key))

    def is_feature_enabled(self: DbProtocol, feature_name: str) -> bool:
        value = self.get_app_config_value(f"feature.{feature_name}_enabled")
        if value is None:
            return True
        return bool(value)

    def get_rules_tuning(self: DbProtocol) -> dict[str, int]:
        config = self.get_app_config()
        tuning: dict[str, int] = {}
        for key, (name, floor) in RULES_CONFIG_KEYS.items():
            default = int(APP_CONFIG_DEFAULTS[key])
            try:
                value = int(config.get(key, default))
            except (TypeError, ValueError):
                value = default
            tuning[name] = max(floor, value)
        return tuning

    def list_config_changes(self: DbProtocol, key: str | None = None, limit: int = 50) -> list[dict[str, Any]]:
        """Newest config changes first, optionally for one key."""
        capped = min(max(1, limit), AUDIT_LIST_LIMIT)
        with self._connect() as conn:
            if key is None:
                rows = conn.execute(
                    """
                    SELECT actor, target, payload_json, created_at FROM admin_audit_log
                    WHERE action = 'config.update'
                    ORDER BY id DESC LIMIT ?
                    """,
                    (capped,),
                ).fetchall()
            else:
                rows = conn.execute(
                    """
                    SELECT actor, target, payload_json, created_at FROM admin_audit_log
                    WHERE action = 'config.update' AND target = ?
                    ORDER BY id DESC LIMIT ?
                    """,
                    (key, capped),
                ).fetchall()
        changes: list[dict[str, Any]] = []
        for row in rows:
            try:
                payload = json.loads(row["payload_json"] or "{}")
            except json.JSONDecodeError:
                payload = {}
            changes.append(
                {
                    "key": row["target"],
                    "value": payload.get("value"),
                    "note": payload.get("note"),
                    "actor": row["actor"],
                    "changed_at": row["created_at"],
                }
            )
        return changes

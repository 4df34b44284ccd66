from __future__ import annotations
import json
from typing import Any
from sqlalchemy import select
from sqlalchemy.orm import Session
from photovault.db.models import Setting


class SettingsRepo:
    def get_all(self, s: Session) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for row in s.execute(select(Setting)).scalars().all():
            try:
                out[row.key] = json.loads(row.value)
            except ValueError:
                # keep the default for this key
                continue
        return out

    def set_many(self, s: Session, values: dict[str, Any]) -> None:
        for key, value in values.items():
            row = s.get(Setting, key)
            encoded = json.dumps(value, ensure_ascii=False)
            if row is None:
                s.add(Setting(key=key, value=encoded))
            else:
                row.value = encoded
        s.flush()

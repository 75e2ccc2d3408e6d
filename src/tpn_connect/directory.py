# directory.py — read-only list of exit validators loaded from a JSON file.
# License: MIT
from __future__ import annotations

import json
import logging
import random
from pathlib import Path
from typing import Dict, List, Optional

from .errors import DirectoryUnavailable, ValidatorNotFound
from .models import Validator

log = logging.getLogger("tpn_connect.directory")


def _validator_from_entry(entry: Dict) -> Validator:
    if not isinstance(entry, dict):
        raise ValueError(f"validator entry is not an object: {entry!r}")
    uid = entry.get("UID", entry.get("id"))
    addr = entry.get("Axon", entry.get("endpoint"))
    if uid is None or not addr:
        raise ValueError(f"entry missing UID/Axon: {entry!r}")
    return Validator(id=str(uid), endpoint_address=str(addr),
                     location_label=str(entry.get("Location", entry.get("location", ""))))


class EndpointDirectory:
    def __init__(self, validators: List[Validator], rng: Optional[random.Random] = None):
        if not validators:
            raise DirectoryUnavailable("validator list is empty")
        seen = set()
        for v in validators:
            if v.id in seen:
                raise DirectoryUnavailable(f"duplicate validator UID {v.id}")
            seen.add(v.id)
        self._validators = tuple(validators)
        self._by_id = {v.id: v for v in validators}
        self._rng = rng or random.Random()

    @classmethod
    def load(cls, path: str) -> "EndpointDirectory":
        p = Path(path)
        try:
            raw = json.loads(p.read_text(encoding="utf-8"))
            if not isinstance(raw, list):
                raise ValueError("expected a JSON array of validators")
            validators = [_validator_from_entry(e) for e in raw]
        except (OSError, ValueError) as e:
            raise DirectoryUnavailable(f"Failed to load {p}: {e}") from e
        log.debug(f"Loaded {len(validators)} validators from {p}")
        return cls(validators)

    def __len__(self) -> int:
        return len(self._validators)

    def list_validators(self) -> List[Validator]:
        return list(self._validators)

    def find_by_id(self, validator_id: str) -> Validator:
        try:
            return self._by_id[str(validator_id)]
        except KeyError:
            raise ValidatorNotFound(str(validator_id)) from None

    def pick_random(self) -> Validator:
        return self._rng.choice(self._validators)

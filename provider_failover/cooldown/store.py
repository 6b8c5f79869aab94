"""
File-backed storage for provider cooldowns.

The cooldown document is best-effort cache state: a missing, corrupt or
schema-mismatched file loads as an empty store rather than failing, and an
invalid record is dropped without disturbing the others. Every
mutation goes through :meth:`CooldownStoreFile.with_locked_update`, which
runs load-mutate-save under the cross-process lock so concurrent agents
never lose each other's writes.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

from pydantic import ValidationError

from provider_failover.config import FailoverConfig
from provider_failover.exceptions import StoreWriteError
from provider_failover.locking import FileLockPolicy, locked_path
from provider_failover.types import (
    COOLDOWN_STORE_VERSION,
    CooldownRecord,
    CooldownStoreDocument,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def resolve_cooldown_path(
    agent_dir: str | Path | None = None,
    config: FailoverConfig | None = None,
) -> Path:
    """
    Resolve the cooldown document path for an agent directory.

    Args:
        agent_dir: Agent directory override.
        config: Base configuration. Defaults to ``FailoverConfig.from_env()``.

    Returns:
        Path of ``provider-cooldowns.json`` beside the agent's auth store.
    """
    base = config or FailoverConfig.from_env()
    return base.with_agent_dir(agent_dir).cooldown_path


class CooldownStoreFile:
    """
    A cooldown document on disk.

    Example:
        >>> store = CooldownStoreFile(Path("/tmp/agent/provider-cooldowns.json"))
        >>> removed = store.with_locked_update(lambda doc: doc.cooldowns.pop("groq", None))
    """

    def __init__(self, path: str | Path, lock_policy: FileLockPolicy | None = None) -> None:
        self.path = Path(path)
        self.lock_policy = lock_policy or FileLockPolicy()

    @classmethod
    def for_agent(
        cls,
        agent_dir: str | Path | None = None,
        config: FailoverConfig | None = None,
    ) -> CooldownStoreFile:
        """Open the store for an agent directory."""
        base = config or FailoverConfig.from_env()
        return cls(resolve_cooldown_path(agent_dir, base), base.lock_policy)

    def load(self) -> CooldownStoreDocument:
        """
        Load the cooldown document.

        Returns:
            The stored document, or an empty one when the file is missing,
            unreadable, not valid JSON, or of an unexpected schema.
            Individual records that fail validation are dropped.
        """
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return CooldownStoreDocument.empty()
        except OSError as e:
            logger.warning(f"Cannot read cooldown store {self.path}: {e}")
            return CooldownStoreDocument.empty()

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring corrupt cooldown store {self.path}: {e}")
            return CooldownStoreDocument.empty()

        if not isinstance(data, dict) or "cooldowns" not in data:
            logger.warning(f"Ignoring cooldown store {self.path}: unexpected layout")
            return CooldownStoreDocument.empty()
        if data.get("version", COOLDOWN_STORE_VERSION) != COOLDOWN_STORE_VERSION:
            logger.warning(
                f"Ignoring cooldown store {self.path}: "
                f"version {data.get('version')!r} != {COOLDOWN_STORE_VERSION}"
            )
            return CooldownStoreDocument.empty()

        raw_cooldowns = data["cooldowns"]
        if not isinstance(raw_cooldowns, dict):
            logger.warning(f"Ignoring cooldown store {self.path}: cooldowns is not a mapping")
            return CooldownStoreDocument.empty()

        # A bad record costs only itself, not its neighbours.
        cooldowns: dict[str, CooldownRecord] = {}
        for provider, raw_record in raw_cooldowns.items():
            try:
                cooldowns[provider] = CooldownRecord.model_validate(raw_record)
            except ValidationError as e:
                logger.warning(
                    f"Dropping invalid cooldown record {provider!r} in {self.path}: "
                    f"{e.error_count()} errors"
                )
        return CooldownStoreDocument(version=COOLDOWN_STORE_VERSION, cooldowns=cooldowns)

    def save(self, document: CooldownStoreDocument) -> None:
        """
        Persist the document, replacing the file atomically.

        Raises:
            StoreWriteError: If the file cannot be written.
        """
        payload = document.to_json()
        tmp_name: str | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.path.parent,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                tmp_name = handle.name
                handle.write(payload)
                handle.write("\n")
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self.path)
        except OSError as e:
            if tmp_name:
                Path(tmp_name).unlink(missing_ok=True)
            raise StoreWriteError(str(self.path), e) from e

    def with_locked_update(self, updater: Callable[[CooldownStoreDocument], T]) -> T:
        """
        Run ``updater`` on the current document under the store lock.

        The document is loaded after the lock is acquired and saved before
        it is released. If ``updater`` raises, nothing is saved.

        Args:
            updater: Mutates the document in place and returns a value.

        Returns:
            Whatever ``updater`` returned.

        Raises:
            LockAcquisitionError: If the lock could not be acquired.
            StoreWriteError: If the updated document could not be written.
        """
        with locked_path(self.path, self.lock_policy):
            document = self.load()
            result = updater(document)
            self.save(document)
            return result

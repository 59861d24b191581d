"""
Atomically swapped rule-set snapshot.

Readers call ``current()`` once per decision and keep that reference for the
whole evaluation; they never take a lock. ``reload()`` is the only mutation:
it is serialized, builds the new ``RuleSet`` completely, then replaces the
reference in a single assignment. In-flight decisions keep the snapshot they
started with. A reload that yields the same content digest keeps the existing
snapshot, so repeated or concurrent reloads are idempotent.
"""

from __future__ import annotations

import logging
from pathlib import Path
import threading
from typing import Protocol

from .errors import RuleSetError, RuleSetNotLoadedError
from .rules import RuleSet, load_rule_set

logger = logging.getLogger(__name__)


class RuleSetLoader(Protocol):
    def load(self) -> RuleSet: ...


class YamlRuleSetLoader:
    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    def load(self) -> RuleSet:
        return load_rule_set(self._path)


class StaticRuleSetLoader:
    """Serves a rule set built in code. ``replace`` swaps what the next load returns."""

    def __init__(self, rule_set: RuleSet) -> None:
        self._rule_set = rule_set

    def replace(self, rule_set: RuleSet) -> None:
        self._rule_set = rule_set

    def load(self) -> RuleSet:
        return self._rule_set


class RuleSetStore:
    def __init__(self, loader: RuleSetLoader) -> None:
        self._loader = loader
        self._snapshot: RuleSet | None = None
        self._reload_lock = threading.Lock()

    def load(self) -> RuleSet:
        """Initial load; same semantics as ``reload``."""
        return self.reload()

    def reload(self) -> RuleSet:
        """
        Load the rule set and swap it in.

        Raises RuleSetError if the new rule set is unusable; the previous
        snapshot (if any) stays active in that case.
        """

        with self._reload_lock:
            previous = self._snapshot
            try:
                candidate = self._loader.load()
            except RuleSetError:
                logger.error(
                    "Rule set reload failed; keeping version=%s",
                    previous.policy_version if previous else None,
                )
                raise
            if not candidate.rules:
                raise RuleSetError("rule set defines no rules")

            if previous is not None and previous.digest == candidate.digest:
                logger.info("Rule set unchanged version=%s", previous.policy_version)
                return previous

            self._snapshot = candidate
            logger.info(
                "Rule set loaded version=%s rules=%d source=%s previous=%s",
                candidate.policy_version,
                len(candidate.rules),
                candidate.source,
                previous.policy_version if previous else None,
            )
            return candidate

    def current(self) -> RuleSet:
        snapshot = self._snapshot
        if snapshot is None:
            raise RuleSetNotLoadedError()
        return snapshot

    def current_policy_version(self) -> str | None:
        snapshot = self._snapshot
        return snapshot.policy_version if snapshot is not None else None

    @property
    def loaded(self) -> bool:
        return self._snapshot is not None

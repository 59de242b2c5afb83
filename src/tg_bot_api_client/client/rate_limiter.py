"""Hierarchical rate limiting for outbound Bot API calls.

Telegram documents the following limits (https://core.telegram.org/bots/faq):

- no more than one message per second in a single chat;
- no more than 20 messages per minute in a group;
- no more than about 30 messages per second in total.

A call acquires a ``total`` limiter for its ``(bot id, base method)`` and,
when it targets a chat, a per-chat limiter nested inside it. Methods that
share limits are aliased to a base method (``editMessageText`` counts
against ``sendMessage``).

A policy is a mapping of method names to either the name of a base method
or to ``{"total": opts, "per_chat": opts}``, where ``opts`` is a mapping of
``LimiterOptions`` fields, ``None`` to disable that level, or (for
``per_chat``) a callable of the chat id returning one of those.
"""

import logging
import threading
import time
from pathlib import Path
from typing import Any, Hashable, Mapping

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pyrate_limiter import BucketFactory, Duration, InMemoryBucket, Limiter, Rate, RateItem, TimeClock

from tg_bot_api_client.errors import ClientConfigError, RateLimitInterrupted

logger = logging.getLogger(__name__)

TOTAL = "total"
PER_CHAT = "per_chat"
LEVELS = (TOTAL, PER_CHAT)

Policy = Mapping[str, Any]


class LimiterOptions(BaseModel):
    """At most ``limit`` calls per ``period`` seconds."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    limit: int = Field(gt=0)
    period: float = Field(default=1.0, gt=0)
    interruptible: bool = False


def is_group_chat(chat_id) -> bool:
    """Group and channel chats have negative ids (or are addressed by '@username')."""
    if isinstance(chat_id, str):
        return chat_id.startswith(("-", "@"))
    return chat_id < 0


def default_per_chat(chat_id) -> dict:
    if is_group_chat(chat_id):
        return {"limit": 20, "period": 60}
    return {"limit": 1, "period": 1}


DEFAULT_POLICY: dict[str, Any] = {
    "sendMessage": {
        TOTAL: {"limit": 30, "period": 1},
        PER_CHAT: default_per_chat,
    },
    "editMessageText": "sendMessage",
}


def base_method(method: str, *policies: Policy | None) -> str:
    """Resolve the method whose limits ``method`` shares.

    Policies are given from the highest to the lowest precedence; the first
    one that mentions ``method`` decides.
    """
    for policy in policies:
        if policy and method in policy:
            entry = policy[method]
            return entry if isinstance(entry, str) else method
    return method


def level_options(level: str, method: str, chat_id=None,
                  *policies: Policy | None) -> LimiterOptions | None:
    """Deep-merge the options of one limiter level across policies.

    Policies are given from the highest to the lowest precedence. An explicit
    ``None`` disables the level for every policy below it.
    """
    merged: dict | None = None
    for policy in reversed(policies):
        entry = (policy or {}).get(method)
        if not isinstance(entry, Mapping) or level not in entry:
            continue
        value = entry[level]
        if callable(value):
            value = value(chat_id)
        if isinstance(value, LimiterOptions):
            value = value.model_dump(exclude_unset=True)
        merged = None if value is None else {**(merged or {}), **value}

    if merged is None:
        return None
    try:
        return LimiterOptions(**merged)
    except ValidationError as e:
        raise ClientConfigError(f"Invalid '{level}' rate limiter options for '{method}': {e}") from e


class ScopedBucketFactory(BucketFactory):
    """One in-memory bucket per scope name.

    pyrate starts a leaker thread per factory, so every scope of a
    ``(bot id, base method, level)`` group shares one thread.
    """

    def __init__(self, clock=None):
        self.clock = clock or TimeClock()
        self._buckets: dict[str, InMemoryBucket] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._buckets)

    def register(self, name: str, options: LimiterOptions) -> None:
        """Create the bucket for ``name``; options only apply on creation."""
        rate = Rate(options.limit, int(options.period * Duration.SECOND.value))
        with self._lock:
            if name not in self._buckets:
                self._buckets[name] = self.create(self.clock, InMemoryBucket, [rate])

    def wrap_item(self, name: str, weight: int = 1) -> RateItem:
        return RateItem(name, self.clock.now(), weight=weight)

    def get(self, item: RateItem) -> InMemoryBucket:
        return self._buckets[item.name]


def scoped_limiter() -> Limiter:
    return Limiter(ScopedBucketFactory(), raise_when_fail=False, max_delay=None)


class RateLimiter:
    """A token bucket for a single ``(bot id, base method, scope)`` key.

    The bucket lives in ``limiter``, a pyrate Limiter over a
    ``ScopedBucketFactory`` that may be shared with other scopes.

    Acquisition is sleep-based: waiting callers poll the bucket and are
    admitted in no particular order once capacity frees up.
    """

    POLL_INTERVAL = 0.025

    def __init__(self, key: tuple, options: LimiterOptions, limiter: Limiter | None = None):
        self.key = key
        self.options = options
        self.name = ":".join(str(part) for part in key)
        self._limiter = limiter or scoped_limiter()
        self._limiter.bucket_factory.register(self.name, options)
        self._wakeup = threading.Condition()
        self._interrupts = 0

    def __repr__(self) -> str:
        return f"RateLimiter({self.name!r}, {self.options.limit}/{self.options.period}s)"

    def try_acquire(self) -> bool:
        """Take a permit if one is available right now."""
        return bool(self._limiter.try_acquire(self.name, weight=1))

    def acquire(self) -> float:
        """Block until a permit is granted; returns the seconds spent waiting.

        Raises RateLimitInterrupted if the limiter is interruptible and
        ``interrupt()`` is called while waiting.
        """
        started = time.monotonic()
        seen = self._interrupts
        while not self.try_acquire():
            if not self.options.interruptible:
                time.sleep(self.POLL_INTERVAL)
                continue
            with self._wakeup:
                if self._interrupts == seen:
                    self._wakeup.wait(self.POLL_INTERVAL)
                if self._interrupts != seen:
                    raise RateLimitInterrupted(f"Interrupted while waiting for '{self.name}'")

        waited = time.monotonic() - started
        if waited >= self.POLL_INTERVAL:
            logger.debug("Waited %.3fs for rate limiter '%s'", waited, self.name)
        return waited

    def interrupt(self) -> None:
        """Wake every caller waiting on an interruptible limiter."""
        with self._wakeup:
            self._interrupts += 1
            self._wakeup.notify_all()


class RateLimiterRegistry:
    """At most one ``RateLimiter`` per key, created on first use.

    Get-or-create is guarded by lock stripes picked by key hash, so unrelated
    bots and methods do not contend on a single lock. Lookups of existing
    limiters take no lock at all.

    Limiters of one ``(bot id, base method, level)`` group share a pyrate
    Limiter, so the number of leaker threads does not grow with the number
    of chats.
    """

    def __init__(self, stripes: int = 64):
        self._limiters: dict[tuple, RateLimiter] = {}
        self._groups: dict[tuple, Limiter] = {}
        self._groups_lock = threading.Lock()
        self._stripes = [threading.Lock() for _ in range(stripes)]

    def __len__(self) -> int:
        return len(self._limiters)

    def __contains__(self, key: tuple) -> bool:
        return key in self._limiters

    def get(self, key: tuple) -> RateLimiter | None:
        return self._limiters.get(key)

    def group_count(self) -> int:
        return len(self._groups)

    def _group(self, key: tuple) -> Limiter:
        *prefix, scope = key
        group_key = (*prefix, TOTAL if scope == TOTAL else PER_CHAT)
        with self._groups_lock:
            group = self._groups.get(group_key)
            if group is None:
                group = self._groups[group_key] = scoped_limiter()
            return group

    def get_or_create(self, key: tuple, options: LimiterOptions) -> RateLimiter:
        """Return the limiter for ``key``; options only apply on creation."""
        limiter = self._limiters.get(key)
        if limiter is not None:
            return limiter
        with self._stripes[hash(key) % len(self._stripes)]:
            limiter = self._limiters.get(key)
            if limiter is None:
                limiter = self._limiters[key] = RateLimiter(key, options, self._group(key))
                logger.debug("Created %r", limiter)
            return limiter

    def limiters_for(self, bot_id: Hashable, method: str, chat_id=None,
                     policy: Policy | None = None,
                     override: Policy | None = None) -> list[RateLimiter]:
        """Return the limiters a call must pass, outermost (``total``) first."""
        policies = (override, policy, DEFAULT_POLICY)
        base = base_method(method, *policies)

        limiters = []
        total = level_options(TOTAL, base, None, *policies)
        if total is not None:
            limiters.append(self.get_or_create((bot_id, base, TOTAL), total))
        if chat_id is not None:
            per_chat = level_options(PER_CHAT, base, chat_id, *policies)
            if per_chat is not None:
                limiters.append(self.get_or_create((bot_id, base, chat_id), per_chat))
        return limiters

    def acquire(self, bot_id: Hashable, method: str, chat_id=None,
                policy: Policy | None = None, override: Policy | None = None) -> float:
        """Block until every applicable limiter admits the call."""
        return sum(
            limiter.acquire()
            for limiter in self.limiters_for(bot_id, method, chat_id, policy, override)
        )


_registry = RateLimiterRegistry()


def get_rate_limiter_registry() -> RateLimiterRegistry:
    """The process-wide registry shared by all clients."""
    return _registry


# Policy files


def _check_policy(policy) -> dict:
    if not isinstance(policy, dict):
        raise ClientConfigError("Rate limiter policy must be a mapping of method names")
    for method, entry in policy.items():
        if isinstance(entry, str):
            continue
        if not isinstance(entry, dict):
            raise ClientConfigError(f"Invalid rate limiter policy entry for '{method}': {entry!r}")
        unknown = set(entry) - set(LEVELS)
        if unknown:
            raise ClientConfigError(f"Unknown rate limiter levels for '{method}': {sorted(unknown)}")
        for level, opts in entry.items():
            if opts is not None and not isinstance(opts, dict):
                raise ClientConfigError(f"Invalid '{level}' options for '{method}': {opts!r}")
    return policy


def load_limiter_opts(path: str | Path) -> dict:
    """Load a rate limiter policy from a YAML file.

    Example::

        sendMessage:
          total: {limit: 25, period: 1}
          per_chat: {interruptible: true}
        setMyCommands:
          total: {limit: 1, period: 60}
        copyMessage: sendMessage
    """
    with open(path, encoding="utf-8") as f:
        policy = yaml.safe_load(f) or {}
    return _check_policy(policy)


def _static_options(opts):
    if callable(opts) or isinstance(opts, LimiterOptions):
        return None
    return dict(opts) if isinstance(opts, Mapping) else opts


def check_policy(policy: Policy | None) -> Policy | None:
    """Validate an in-memory policy; callables are allowed for ``per_chat``."""
    if policy is None:
        return None
    if not isinstance(policy, Mapping):
        raise ClientConfigError("Rate limiter policy must be a mapping of method names")
    static = {
        method: {level: _static_options(opts) for level, opts in entry.items()}
        if isinstance(entry, Mapping) else entry
        for method, entry in policy.items()
    }
    _check_policy(static)
    return policy

"""
Idempotency Ledger

Guarantees that one inbound message produces at most one referral, even when
the email provider redelivers a webhook or two deliveries race.

A ledger entry moves through three states keyed by ``messageId``:
- absent: nobody has claimed the message
- pending: one caller is processing it; others wait for its result
- completed: later claims raise DuplicateMessage carrying the stored ProcessingResult

Two implementations:
- InMemoryIdempotencyLedger: single-process, asyncio.Lock plus per-key futures
- RedisIdempotencyLedger: shared across workers, SET NX claim token with TTL
"""

import asyncio
from typing import Protocol, runtime_checkable
from uuid import uuid4

from redis import asyncio as aioredis
from structlog import get_logger

from agents.referral_intake.models import ProcessingResult

from ..exceptions import DownstreamFailure, DuplicateMessage

logger = get_logger()

# Deletes KEYS[1] only while it still holds the claim token ARGV[1]
_RELEASE_CLAIM_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
end
return 0
"""


@runtime_checkable
class IdempotencyLedger(Protocol):
    """Atomic check-and-set store of processing results keyed by message id."""

    async def claim(self, key: str) -> None:
        """
        Claim a key for processing. Returning means the caller owns the key.

        Waits for an in-flight owner to finish if necessary.

        Raises:
            DuplicateMessage: If the key is completed; carries the stored result
            DownstreamFailure: If the ledger cannot be reached
        """
        ...

    async def complete(self, key: str, result: ProcessingResult) -> None:
        """Store the result of a claimed key and wake any waiters."""
        ...

    async def release(self, key: str) -> None:
        """Drop a claim without a result so a redelivery can retry."""
        ...


class InMemoryIdempotencyLedger:
    """
    Process-local ledger.

    Passed explicitly to the orchestrator; never shared through module state.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._results: dict[str, ProcessingResult] = {}
        self._pending: dict[str, asyncio.Future] = {}

    async def claim(self, key: str) -> None:
        while True:
            async with self._lock:
                if key in self._results:
                    raise DuplicateMessage(key, self._results[key])

                waiter = self._pending.get(key)
                if waiter is None:
                    self._pending[key] = asyncio.get_running_loop().create_future()
                    return None

            logger.info("ledger_waiting_for_inflight", message_id=key)
            result = await asyncio.shield(waiter)
            if result is not None:
                raise DuplicateMessage(key, result)
            # Owner released without a result; try to claim again

    async def complete(self, key: str, result: ProcessingResult) -> None:
        async with self._lock:
            self._results[key] = result
            waiter = self._pending.pop(key, None)

        if waiter is not None and not waiter.done():
            waiter.set_result(result)

    async def release(self, key: str) -> None:
        async with self._lock:
            waiter = self._pending.pop(key, None)

        if waiter is not None and not waiter.done():
            waiter.set_result(None)

    def __len__(self) -> int:
        return len(self._results)


class RedisIdempotencyLedger:
    """
    Redis-backed ledger shared by every worker.

    Claims use ``SET key <PENDING:token> NX EX pending_ttl`` so a crashed
    owner's claim expires. Release deletes the key only while it still holds
    this worker's token. Completed results are stored as camelCase JSON with a
    longer TTL.
    """

    PENDING = "__pending__"

    def __init__(
        self,
        redis_client: aioredis.Redis,
        key_prefix: str = "referral:message:",
        result_ttl_seconds: int = 7 * 24 * 3600,
        pending_ttl_seconds: int = 120,
        wait_seconds: float = 30.0,
        poll_interval_seconds: float = 0.25,
    ):
        """
        Initialize ledger.

        Args:
            redis_client: redis.asyncio client
            key_prefix: Prefix for ledger keys
            result_ttl_seconds: How long completed results are served
            pending_ttl_seconds: Expiry of an in-flight claim
            wait_seconds: Maximum time to wait for another worker's result
            poll_interval_seconds: Delay between polls while waiting
        """
        self.redis_client = redis_client
        self.key_prefix = key_prefix
        self.result_ttl_seconds = result_ttl_seconds
        self.pending_ttl_seconds = pending_ttl_seconds
        self.wait_seconds = wait_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self._claims: dict[str, str] = {}

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisIdempotencyLedger":
        return cls(aioredis.from_url(url, decode_responses=True), **kwargs)

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def claim(self, key: str) -> None:
        redis_key = self._key(key)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.wait_seconds

        while True:
            token = f"{self.PENDING}:{uuid4().hex}"
            claimed = await self.redis_client.set(redis_key, token, nx=True, ex=self.pending_ttl_seconds)
            if claimed:
                self._claims[key] = token
                return None

            value = await self.redis_client.get(redis_key)
            if value is None:
                # Released or expired between SET and GET
                continue

            if isinstance(value, bytes):
                value = value.decode("utf-8")

            if not value.startswith(self.PENDING):
                raise DuplicateMessage(key, ProcessingResult.model_validate_json(value))

            if loop.time() >= deadline:
                raise DownstreamFailure(
                    "idempotency_ledger",
                    f"message {key} still in flight after {self.wait_seconds:g}s",
                )

            await asyncio.sleep(self.poll_interval_seconds)

    async def complete(self, key: str, result: ProcessingResult) -> None:
        self._claims.pop(key, None)
        payload = result.model_dump_json(by_alias=True)
        await self.redis_client.setex(self._key(key), self.result_ttl_seconds, payload)

    async def release(self, key: str) -> None:
        token = self._claims.pop(key, None)
        if token is None:
            return
        await self.redis_client.eval(_RELEASE_CLAIM_SCRIPT, 1, self._key(key), token)

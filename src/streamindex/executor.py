"""
StreamIndex Executor — Bounded, Retried Bulk Writes
===================================================

Applies write operations to the search engine through the bulk API.

Design principles:
    - Bounded chunks: at most max_chunk_size operations per bulk call
    - Concurrent chunks: every chunk is an independent asyncio task, with
      at most max_concurrent_chunks requests in flight
    - Request-level retry: a failed or timed-out bulk call is retried with a
      progressive backoff (100ms, 200ms, 500ms, 1000ms)
    - Item-level reconciliation: item errors inside a successful bulk
      response are reported once and never retried
    - A body the serializer rejects is never resent

Every submitted operation yields exactly one ProcessingResult.

Typical usage:
    executor = BatchExecutor(client, max_chunk_size=500)
    results = await executor.execute(operations)
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from elasticsearch import ApiError, SerializationError, TransportError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_chain,
    wait_fixed,
    wait_none,
)

from .models import ProcessingResult, WriteOperation

logger = logging.getLogger(__name__)

# Whole-request failures; anything else is a bug and propagates
RETRYABLE_ERRORS = (ApiError, TransportError, asyncio.TimeoutError)

# A TransportError subclass, but resending the same body cannot succeed
NON_RETRYABLE_ERRORS = (SerializationError,)

MAX_ERROR_LENGTH = 300

DEFAULT_RETRY_DELAYS = (0.1, 0.2, 0.5, 1.0)


def describe_error(error: Any) -> str:
    """Render a bulk item error or exception as a single line."""
    if isinstance(error, dict):
        kind = error.get("type", "error")
        reason = error.get("reason", "")
        return f"{kind}: {reason}" if reason else str(kind)
    if isinstance(error, BaseException):
        text = str(error) or type(error).__name__
    else:
        text = str(error)
    if len(text) > MAX_ERROR_LENGTH:
        text = text[:MAX_ERROR_LENGTH] + f"... ({len(text)} chars)"
    return text


async def gather_or_cancel(*aws: Awaitable[Any]) -> List[Any]:
    """
    Like asyncio.gather, but the first failure cancels the remaining tasks
    and waits for them to finish before re-raising.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class BatchExecutor:
    """
    Chunked, concurrent, retried bulk writer.

    Features:
        - ceil(N / max_chunk_size) bulk calls for N operations
        - Semaphore-bounded concurrency on a single event loop
        - tenacity retry with a fixed progressive wait schedule
        - Per-item success/failure from the bulk response
    """

    def __init__(
        self,
        client: Any,
        max_chunk_size: int = 500,
        max_concurrent_chunks: int = 10,
        max_attempts: int = 4,
        retry_delays: Sequence[float] = DEFAULT_RETRY_DELAYS,
        request_timeout: float = 30.0,
        refresh: bool = False,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        """
        Initialize the executor.

        Args:
            client: Async search client exposing bulk(operations=..., ...)
            max_chunk_size: Operations per bulk request (engine item limit)
            max_concurrent_chunks: Bulk requests in flight at once
            max_attempts: Attempts per chunk, first try included
            retry_delays: Seconds to wait before each retry; the last value
                repeats if there are more retries than entries
            request_timeout: Per-call timeout in seconds
            refresh: Ask the engine to refresh after each call (slow)
            sleep: Awaitable sleep used between retries
        """
        if max_chunk_size < 1:
            raise ValueError("max_chunk_size must be >= 1")
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

        self._client = client
        self.max_chunk_size = max_chunk_size
        self.max_concurrent_chunks = max(1, max_concurrent_chunks)
        self.max_attempts = max_attempts
        self.retry_delays = tuple(retry_delays)
        self.request_timeout = request_timeout
        self.refresh = refresh
        self._sleep = sleep

    def chunk(self, operations: Sequence[WriteOperation]) -> List[List[WriteOperation]]:
        """Split operations into consecutive slices of at most max_chunk_size."""
        return [
            list(operations[i:i + self.max_chunk_size])
            for i in range(0, len(operations), self.max_chunk_size)
        ]

    async def execute(self, operations: Sequence[WriteOperation]) -> List[ProcessingResult]:
        """
        Apply operations and report one result per operation.

        Args:
            operations: Upsert/Delete operations, in submission order

        Returns:
            ProcessingResults; order within a chunk follows submission,
            order across chunks is unspecified
        """
        if not operations:
            return []

        chunks = self.chunk(operations)
        semaphore = asyncio.Semaphore(self.max_concurrent_chunks)
        start_time = time.monotonic()

        async def run(chunk: List[WriteOperation], chunk_index: int) -> List[ProcessingResult]:
            async with semaphore:
                return await self.process_chunk(chunk, chunk_index)

        chunk_results = await gather_or_cancel(
            *(run(chunk, index) for index, chunk in enumerate(chunks))
        )

        results = [result for batch in chunk_results for result in batch]
        failed = sum(1 for r in results if not r.success)
        logger.info(
            "Bulk operations executed",
            extra={
                "operations": len(operations),
                "chunks": len(chunks),
                "failed": failed,
                "elapsed_ms": round((time.monotonic() - start_time) * 1000, 1),
            },
        )
        return results

    def _retrying(self, chunk_index: int) -> AsyncRetrying:
        if self.retry_delays:
            wait = wait_chain(*(wait_fixed(delay) for delay in self.retry_delays))
        else:
            wait = wait_none()

        def log_retry(retry_state: RetryCallState) -> None:
            logger.warning(
                "Retrying batch",
                extra={
                    "chunk_index": chunk_index,
                    "attempt": retry_state.attempt_number,
                    "error": describe_error(retry_state.outcome.exception()),
                },
            )

        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait,
            retry=(
                retry_if_exception_type(RETRYABLE_ERRORS)
                & retry_if_not_exception_type(NON_RETRYABLE_ERRORS)
            ),
            before_sleep=log_retry,
            sleep=self._sleep,
            reraise=True,
        )

    async def _send(self, chunk: List[WriteOperation]) -> Dict[str, Any]:
        body: List[Dict[str, Any]] = []
        for operation in chunk:
            body.extend(operation.to_actions())

        response = await asyncio.wait_for(
            self._client.bulk(
                operations=body,
                refresh=self.refresh,
                timeout=f"{max(1, int(self.request_timeout))}s",
            ),
            timeout=self.request_timeout,
        )
        return getattr(response, "body", response)

    async def process_chunk(
        self,
        chunk: List[WriteOperation],
        chunk_index: int
    ) -> List[ProcessingResult]:
        """
        Write one chunk, retrying whole-request failures.

        Args:
            chunk: Operations for a single bulk call
            chunk_index: Position of the chunk, used for synthesised ids

        Returns:
            Exactly len(chunk) ProcessingResults
        """
        attempts = 0
        try:
            async for attempt in self._retrying(chunk_index):
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    response = await self._send(chunk)
        except RETRYABLE_ERRORS as exc:
            error = describe_error(exc)
            logger.error(
                "Batch failed",
                extra={"chunk_index": chunk_index, "retry_count": attempts, "error": error},
            )
            return [
                ProcessingResult(
                    record_id=operation.id or f"chunk_{chunk_index}_{i}",
                    success=False,
                    error=error,
                    retry_count=attempts,
                )
                for i, operation in enumerate(chunk)
            ]

        return self.reconcile(chunk, chunk_index, response, retry_count=attempts - 1)

    def reconcile(
        self,
        chunk: List[WriteOperation],
        chunk_index: int,
        response: Dict[str, Any],
        retry_count: int = 0
    ) -> List[ProcessingResult]:
        """
        Map a bulk response onto the submitted operations.

        Items are matched by position. An item carrying an "error" is a
        failure; everything else (including a delete of a missing document)
        is a success. Operations with no matching item fail.
        """
        items: List[Dict[str, Any]] = list(response.get("items") or [])
        results: List[ProcessingResult] = []
        failed = 0

        for i, operation in enumerate(chunk):
            if i >= len(items):
                failed += 1
                results.append(ProcessingResult(
                    record_id=operation.id or f"chunk_{chunk_index}_{i}",
                    success=False,
                    error="missing item in bulk response",
                    retry_count=retry_count,
                ))
                continue

            item = items[i]
            info: Dict[str, Any] = item.get(operation.action) or next(iter(item.values()), {})
            record_id = str(info.get("_id") or operation.id or f"chunk_{chunk_index}_{i}")
            error: Optional[Any] = info.get("error")

            if error is not None:
                failed += 1
                results.append(ProcessingResult(
                    record_id=record_id,
                    success=False,
                    error=describe_error(error),
                    retry_count=retry_count,
                ))
            else:
                results.append(ProcessingResult(
                    record_id=record_id,
                    success=True,
                    retry_count=retry_count,
                ))

        if failed:
            logger.warning(
                "Batch had errors",
                extra={"chunk_index": chunk_index, "failed_count": failed, "total_count": len(chunk)},
            )
        return results

    async def close(self) -> None:
        """Close the underlying search client."""
        await self._client.close()

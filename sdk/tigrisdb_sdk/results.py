"""
Result adaptation for TigrisDB SDK.

Turns pending remote calls into either a blocking value or a
``concurrent.futures.Future``, and stream responses into lazy converted
iterators. Failures come out as the same domain error on every path.

Invariants:
    - Async conversion and completion run on the supplied executor,
      never on the gRPC callback thread
    - Sync and async paths produce identical error messages
    - An exhausted iterator stays exhausted
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor, Future
from typing import Any, Callable, Generic, Iterator, Optional, Protocol, TypeVar

from .errors import wrap_error

logger = logging.getLogger(__name__)

F = TypeVar("F")
T = TypeVar("T")

ExceptionHandler = Callable[["Future[T]", BaseException], None]


class PendingCall(Protocol[F]):
    """A remote call in flight (``grpc.Future`` or ``concurrent.futures.Future``)."""

    def result(self, timeout: Optional[float] = None) -> F: ...

    def exception(self, timeout: Optional[float] = None) -> Optional[BaseException]: ...

    def add_done_callback(self, fn: Callable[[Any], None]) -> None: ...


def unwrap(
    pending: PendingCall[F],
    converter: Callable[[F], T],
    error_message: str,
) -> T:
    """Block until the call resolves and return the converted value.

    Raises:
        TigrisDBError: Wrapped failure with ``error_message`` as label
    """
    try:
        return converter(pending.result())
    except Exception as e:
        raise wrap_error(error_message, e) from e


def transform_future(
    pending: PendingCall[F],
    converter: Callable[[F], T],
    executor: Executor,
    error_message: str,
    exception_handler: Optional[ExceptionHandler] = None,
) -> Future[T]:
    """Adapt a pending call into a future completed on ``executor``.

    Args:
        pending: Call in flight
        converter: Maps the raw response to the result type
        executor: Runs conversion and completion
        error_message: Label for the wrapped failure
        exception_handler: Takes over completion on failure; it receives
            the result future and the raw failure

    Returns:
        Future resolving to the converted value
    """
    result: Future[T] = Future()
    result.set_running_or_notify_cancel()

    def complete(done: PendingCall[F]) -> None:
        error = done.exception()
        if error is not None:
            if exception_handler is not None:
                exception_handler(result, error)
            else:
                result.set_exception(wrap_error(error_message, error))
            return
        try:
            result.set_result(converter(done.result()))
        except Exception as e:
            result.set_exception(wrap_error(error_message, e))

    def on_done(done: PendingCall[F]) -> None:
        try:
            executor.submit(complete, done)
        except RuntimeError as e:
            # executor already shut down
            result.set_exception(wrap_error(error_message, e))

    pending.add_done_callback(on_done)
    return result


def failed_future(error: BaseException) -> Future[Any]:
    """A future already completed with ``error``."""
    future: Future[Any] = Future()
    future.set_running_or_notify_cancel()
    future.set_exception(error)
    return future


class ConvertedIterator(Generic[F, T]):
    """Lazy, forward-only iterator converting each element on demand.

    Stream failures surface as domain errors labelled with
    ``error_message``. ``close()`` cancels the underlying stream.
    """

    def __init__(
        self,
        source: Iterator[F],
        converter: Callable[[F], T],
        error_message: str,
    ) -> None:
        self._source = source
        self._converter = converter
        self._error_message = error_message
        self._exhausted = False

    def __iter__(self) -> ConvertedIterator[F, T]:
        return self

    def __next__(self) -> T:
        if self._exhausted:
            raise StopIteration
        try:
            item = next(self._source)
        except StopIteration:
            self._exhausted = True
            raise
        except Exception as e:
            self._exhausted = True
            raise wrap_error(self._error_message, e) from e
        try:
            return self._converter(item)
        except Exception as e:
            raise wrap_error(self._error_message, e) from e

    def close(self) -> None:
        """Stop consuming and release the stream."""
        if self._exhausted:
            return
        self._exhausted = True
        cancel = getattr(self._source, "cancel", None)
        if callable(cancel):
            cancel()

    def __enter__(self) -> ConvertedIterator[F, T]:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


def transform_iterator(
    source: Iterator[F],
    converter: Callable[[F], T],
    error_message: str,
) -> ConvertedIterator[F, T]:
    """Wrap ``source`` into a lazy converted iterator."""
    return ConvertedIterator(source, converter, error_message)

#
# Cancellation helpers for the registry client.
#
# (C) 2024, Nicolai Langfeldt, Schibsted Products and Technology
#
# Python coroutines can be cancelled, but the registry objects are
# driven by a cancellation token that is shared between many calls
# (and may be triggered from a signal handler), so we need a way to
# race an awaitable against such a token.
#

import asyncio


class CancelError(Exception):
    """Raised when an operation is cancelled through a
    CancellationToken.  This is deliberately not a RegistryError so
    that callers can tell "the user gave up" from "the registry said
    no"."""

    def __init__(self):
        super().__init__("Operation cancelled.")


class Disposable:
    """Handle returned when subscribing to a cancellation token.  Call
    dispose() to unsubscribe.  Disposing twice is harmless."""

    def __init__(self, on_dispose):
        self._on_dispose = on_dispose

    def dispose(self):
        if self._on_dispose is not None:
            on_dispose, self._on_dispose = self._on_dispose, None
            on_dispose()


class CancellationToken:
    """A cancelled flag and a cancellation event.

    Example:

       token = CancellationToken()
       signal.signal(signal.SIGINT, lambda *_: token.cancel())

       tags = await repository.get_tags(False, token)
    """

    def __init__(self):
        self.is_cancellation_requested = False
        self._listeners = []

    def on_cancellation_requested(self, listener):
        """Call listener() when the token is cancelled.  Returns a
        Disposable that removes the listener again."""

        self._listeners.append(listener)

        def remove():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return Disposable(remove)

    @property
    def listener_count(self):
        return len(self._listeners)

    def cancel(self):
        """Cancel the token.  Only the first call notifies listeners."""

        if self.is_cancellation_requested:
            return

        self.is_cancellation_requested = True

        for listener in list(self._listeners):
            listener()


def _retrieve_exception(task):
    # The losing side of the race still runs to the end, make sure
    # asyncio does not complain about an exception nobody looked at.
    if not task.cancelled():
        task.exception()


async def as_cancellable(awaitable, token):
    """Wait for awaitable, but give up with CancelError as soon as
    token is cancelled.

    The awaitable itself is NOT cancelled.  If it is a blocking
    request running in a worker thread it will finish in the
    background and the result is thrown away.

    The cancellation listener is removed whichever side wins.
    """

    if token.is_cancellation_requested:
        # Nobody will wait for it, but a coroutine object must be
        # closed or python warns about it
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise CancelError()

    loop = asyncio.get_running_loop()
    operation = asyncio.ensure_future(awaitable)
    cancelled = loop.create_future()

    def on_cancel():
        def settle():
            if not cancelled.done():
                cancelled.set_exception(CancelError())

        # The token may be cancelled from another thread (signal
        # handler, UI thread), the future must be touched from the loop.
        loop.call_soon_threadsafe(settle)

    disposable = token.on_cancellation_requested(on_cancel)

    try:
        await asyncio.wait({operation, cancelled},
                           return_when=asyncio.FIRST_COMPLETED)
    finally:
        disposable.dispose()

    if operation.done():
        if not cancelled.done():
            cancelled.cancel()
        return operation.result()

    operation.add_done_callback(_retrieve_exception)
    cancelled.result()   # raises CancelError


async def fan_out(awaitables, limit=None):
    """Run all the awaitables concurrently and return their results in
    the same order.  With limit set no more than that many run at the
    same time.  The first failure is raised, like asyncio.gather."""

    awaitables = list(awaitables)

    if limit is None or limit <= 0 or len(awaitables) <= limit:
        return await asyncio.gather(*awaitables)

    semaphore = asyncio.Semaphore(limit)

    async def bounded(aw):
        async with semaphore:
            return await aw

    return await asyncio.gather(*[bounded(aw) for aw in awaitables])

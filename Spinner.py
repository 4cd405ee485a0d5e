#
# Spinner to show progress.
#
# (C) 2024, Nicolai Langfeldt, Schibsted Products and Technology
#

import sys
import random
import asyncio


class Spinner:
    """Spinner to show progress.  Show nothing if we're not on a terminal.

    By default print the spinner character and backspace so that new
    output on the line will overwrite the spinner character.

    Registry operations are coroutines, so the usual way to use it is
    to let it spin while waiting:

      sp = Spinner()
      tags = await sp.spin_while(repo.get_tags(False, token))

    There are 5 kinds of spinners.  The default is picked at random.
    See set_kind for more information and to set one specific one.
    """

    def __init__(self, prefix='', postfix="\b", kind=None, stream=None):
        self.prefix = prefix
        self.postfix = postfix
        self.stream = stream if stream is not None else sys.stderr
        self.idx = 0

        if kind is None:
            kind = random.randint(0, len(spinner)-1)

        self.set_kind(kind)

    @property
    def is_tty(self):
        return self.stream.isatty()

    def set_kind(self, new_kind):
        """Change the spinner kind:
        - 0: |/-\\      - Looks like a spinning line
        - 1: .oOo      - Looks like a pulsing dot
        - 2: braille   - Looks like a line spinning in a square,
                         might not work on your terminal
        - 3: -+|+      - Looks like a twitching cross
        - 4: odoqopod  - Looks like a circle with issues

        Out of range numbers give kind 0.
        """
        if new_kind is None or new_kind >= len(spinner) or new_kind < 0:
            new_kind = 0

        self.kind = new_kind
        self.idx = 0

    def next(self):
        """Print the next spinner character"""

        # No progress unless we have a terminal
        if not self.is_tty:
            return

        self.idx += 1
        if self.idx >= len(spinner[self.kind]):
            self.idx = 0

        print("%s%s" % (self.prefix, spinner[self.kind][self.idx]),
              end=self.postfix, file=self.stream, flush=True)

    async def spin_while(self, awaitable, interval=0.1):
        """Await awaitable, calling next() every interval seconds until
        it is done.  Returns (or raises) what the awaitable does."""

        task = asyncio.ensure_future(awaitable)

        while True:
            self.next()
            done, _ = await asyncio.wait({task}, timeout=interval)
            if done:
                return task.result()


spinner = ["|/-\\", ".oOo", "⠇⠋⠙⠸⠴⠦", "-+|+", "odoqopod"]

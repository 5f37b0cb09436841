"""The tick loop: one LoopingCall per log category.

A tick is resolve -> read -> checkpoint -> parse/normalize -> deliver. The
checkpoint moves as soon as the read succeeded, whatever later happens to
the lines, so an unreachable Discord never makes lines pile up. Every
error a tick runs into is logged here and the next tick simply tries again.
"""

import logging

from twisted.internet import defer, reactor, task
from twisted.python import log

from scumbot import reader, resolver
from scumbot.checkpoint import advance
from scumbot.errors import CheckpointCorrupt, LogUnavailable, MalformedLine

LOG_POLL_INTERVAL = 5   # seconds between log file checks
SHUTDOWN_TIMEOUT = 10   # seconds in-flight ticks get to finish on shutdown


class CategoryState:
    """Everything the relay knows about one category between ticks."""

    def __init__(self, category, target=None):
        self.category = category
        self.target = target
        self.checkpoint = None
        self.loaded = False
        # byte position of the last read, valid only for checkpoint.active_file
        self.offset = None
        self.missing_logged = False
        self.inflight = None
        self.delivered = 0
        self.failed = 0
        self.dropped = 0

    def __repr__(self):
        return f"<CategoryState {self.category} {self.checkpoint}>"


class Relay:
    def __init__(self, registry, store, log_dir, client=None, normalizer=None,
                 publisher=None, encoding=reader.DEFAULT_ENCODING,
                 interval=LOG_POLL_INTERVAL, first_run="tail", clock=None):
        self.registry = registry
        self.store = store
        self.log_dir = log_dir
        self.client = client
        self.normalizer = normalizer
        self.publisher = publisher
        self.encoding = encoding
        self.interval = interval
        self.first_run = first_run
        self.clock = clock or reactor
        self.states = {}
        self.looping_calls = {}
        self.stopping = False

    def add_category(self, category, target=None):
        if self.registry.get(category) is None:
            raise ValueError(f"no grammar for category {category!r}")
        state = CategoryState(category, target)
        self.states[category] = state
        return state

    ### one tick

    def load_checkpoint(self, state):
        state.loaded = True
        try:
            state.checkpoint = self.store.load(state.category)
        except CheckpointCorrupt as e:
            log.msg(f"Warning: {state.category}: checkpoint unusable ({e}), "
                    "starting from the end of the log", logLevel=logging.WARNING)
            state.checkpoint = None

    def read(self, state, handle):
        checkpoint = state.checkpoint
        if checkpoint is None and self.first_run == "tail":
            return reader.tail(handle.path, self.encoding)
        if checkpoint is None or checkpoint.active_file != handle.path:
            return reader.read(handle.path, 0, self.encoding)
        return reader.read(handle.path, checkpoint.last_line, self.encoding, state.offset)

    def parse(self, state, lines):
        events = []
        for line in lines:
            try:
                event = self.registry.parse_line(state.category, line)
            except MalformedLine as e:
                state.dropped += 1
                log.msg(f"Warning: {state.category}: dropping malformed line ({e}): {e.line!r}",
                        logLevel=logging.WARNING)
                continue
            except Exception:
                state.dropped += 1
                log.err(None, f"{state.category}: error parsing line {line!r}")
                continue
            if event is None:
                continue
            if self.normalizer is not None:
                try:
                    event = self.normalizer.normalize(event)
                except Exception:
                    state.dropped += 1
                    log.err(None, f"{state.category}: error normalizing {event.event_type} event")
                    continue
            events.append(event)
        return events

    @defer.inlineCallbacks
    def deliver(self, state, events):
        for event in events:
            if self.publisher is not None:
                self.publisher.observe(event)
            if self.client is None or state.target is None:
                continue
            try:
                result = yield self.client.deliver(state.target, event)
            except Exception:
                state.failed += 1
                log.err(None, f"{state.category}: error delivering {event.event_type} event")
                continue
            if result.success:
                state.delivered += 1
            else:
                state.failed += 1
                log.msg(f"{state.category}: dropped {event.event_type} event "
                        f"from {event.timestamp} (status {result.status})")

    @defer.inlineCallbacks
    def run_tick(self, state):
        if not state.loaded:
            self.load_checkpoint(state)
        try:
            handle = resolver.resolve(self.log_dir, state.category)
        except LogUnavailable as e:
            if not state.missing_logged:
                log.msg(f"{state.category}: {e}; waiting for it to appear")
                state.missing_logged = True
            return None
        state.missing_logged = False
        if handle is None:
            log.msg(f"{state.category}: no log file yet", logLevel=logging.DEBUG)
            return None

        result = self.read(state, handle)
        if not result.success:
            log.msg(f"{state.category}: {result.error}, retrying next tick", logLevel=logging.DEBUG)
            return None

        old = state.checkpoint
        rotated = old is not None and old.active_file != handle.path
        if rotated:
            log.msg(f"{state.category}: log rotated {old.active_file} -> {handle.path}")
        if result.restarted:
            log.msg(f"{state.category}: {handle.path} shrank, reading it from the top")
        state.offset = result.offset

        # saved before parsing, so a line that breaks the tick is not read again
        if old is None or rotated or result.restarted or result.total_lines != old.last_line:
            checkpoint = advance(old, state.category, handle.path, result.total_lines,
                                 restarted=result.restarted)
            self.store.save(checkpoint)
            state.checkpoint = checkpoint

        events = self.parse(state, result.new_lines)
        yield self.deliver(state, events)
        return events

    ### loop control

    def _tick_failed(self, failure, state):
        log.err(failure, f"Error in {state.category} tick")

    def tick(self, state):
        """run_tick that never errbacks, so the LoopingCall keeps going."""
        if self.stopping:
            return None
        d = self.run_tick(state)
        d.addErrback(self._tick_failed, state)
        state.inflight = d

        def done(result):
            state.inflight = None
            return result
        return d.addBoth(done)

    def start(self):
        for category, state in sorted(self.states.items()):
            call = task.LoopingCall(self.tick, state)
            call.clock = self.clock
            self.looping_calls[category] = call
            call.start(self.interval, now=True)
        log.msg(f"Relay: watching {', '.join(sorted(self.states)) or 'nothing'} "
                f"in {self.log_dir} every {self.interval}s")

    def stop(self, timeout=SHUTDOWN_TIMEOUT):
        """Stop ticking; fires once in-flight ticks are done or ``timeout`` passed."""
        self.stopping = True
        for call in self.looping_calls.values():
            if call.running:
                call.stop()
        if self.publisher is not None:
            self.publisher.stop()
        inflight = [s.inflight for s in self.states.values() if s.inflight is not None]
        if not inflight:
            return defer.succeed(None)
        log.msg(f"Relay: waiting up to {timeout}s for {len(inflight)} tick(s) to finish")
        d = defer.DeferredList(inflight, consumeErrors=True)
        d.addTimeout(timeout, self.clock)
        d.addErrback(lambda f: log.msg(f"Relay: gave up waiting for ticks: {f.getErrorMessage()}"))
        return d

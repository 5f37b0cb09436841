#!/usr/bin/env python3
# -*- coding: UTF-8 -*-
"""

*** THIS IS THE SCUM LOG RELAY ***

scumbot/bot.py - relays SCUM dedicated server logs (kills, logins, chat,
                 economy and the rest) to Discord channels and webhooks

Based loosely on the game-reporting loop of:
tnntbot.py - a game-reporting IRC bot for The November Nethack Tournament
Copyright (c) 2018 A. Thomson, K. Simpson
All rights reserved.

Redistribution and use in source and binary forms, with or without
modification, are permitted provided that the following conditions are
met:

1. Redistributions of source code must retain the above copyright
notice, this list of conditions and the following disclaimer.

2. Redistributions in binary form must reproduce the above copyright
notice, this list of conditions and the following disclaimer in the
documentation and/or other materials provided with the distribution.

THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS "AS
IS" AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT LIMITED
TO, THE IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS FOR A
PARTICULAR PURPOSE ARE DISCLAIMED. IN NO EVENT SHALL THE COPYRIGHT
HOLDER OR CONTRIBUTORS BE LIABLE FOR ANY DIRECT, INDIRECT, INCIDENTAL,
SPECIAL, EXEMPLARY, OR CONSEQUENTIAL DAMAGES (INCLUDING, BUT NOT LIMITED
TO, PROCUREMENT OF SUBSTITUTE GOODS OR SERVICES; LOSS OF USE, DATA, OR
PROFITS; OR BUSINESS INTERRUPTION) HOWEVER CAUSED AND ON ANY THEORY OF
LIABILITY, WHETHER IN CONTRACT, STRICT LIABILITY, OR TORT (INCLUDING
NEGLIGENCE OR OTHERWISE) ARISING IN ANY WAY OUT OF THE USE OF THIS
SOFTWARE, EVEN IF ADVISED OF THE POSSIBILITY OF SUCH DAMAGE.
"""

from twisted.internet import reactor
from twisted.python import log, usage
from twisted.python.logfile import DailyLogFile
import logging  # for log level numbers
import os       # for splitting the log file path
import sys

from scumbot import categories
from scumbot.boards import BoardPublisher, KillBoard, LiveMessageStore, OnlineBoard
from scumbot.checkpoint import CheckpointStore
from scumbot.config import BotConfig
from scumbot.delivery import DeliveryClient
from scumbot.errors import ConfigError
from scumbot.normalize import ItemCatalog, Normalizer
from scumbot.scheduler import Relay

BOARD_TYPES = {"kills": KillBoard, "online": OnlineBoard}


class Options(usage.Options):
    synopsis = "scumbot [options]"
    optParameters = [["config", "c", None, "Path to scumbot.toml (default: search path)"],
                     ["logfile", "l", None, "Log file (default: from config, '-' for stdout only)"]]
    optFlags = [["debug", "d", "Log debug messages too"]]


def level_filter(observer, level):
    """Drop legacy log events below ``level``; errors always pass."""
    def emit(event):
        if event.get("isError") or event.get("logLevel", logging.INFO) >= level:
            observer(event)
    return emit


def start_logging(logfile, debug=False):
    level = logging.DEBUG if debug else logging.INFO
    log.startLoggingWithObserver(level_filter(log.FileLogObserver(sys.stdout).emit, level),
                                 setStdout=False)
    if logfile and logfile != "-":
        directory, name = os.path.split(os.path.abspath(logfile))
        log.addObserver(level_filter(log.FileLogObserver(DailyLogFile(name, directory)).emit, level))


def build_relay(config, clock=None, session=None, runner=None):
    """Wire the relay described by ``config``; categories without a destination stay off."""
    config.validate()
    registry = categories.default_registry()
    client = DeliveryClient(token=config.bot_token(),
                            api_base=config.api_base,
                            timeout=config.timeout,
                            max_retries=config.max_retries,
                            max_retry_wait=config.max_retry_wait,
                            edit_interval=config.edit_interval,
                            session=session, clock=clock, runner=runner)
    publisher = BoardPublisher(client, LiveMessageStore(config.state_dir), clock=clock)
    size = config.boards.get("size")
    for name, board_type in BOARD_TYPES.items():
        channel = config.boards.get(name)
        if channel:
            board = board_type(size) if size else board_type()
            publisher.add(board, client.channel(str(channel)))

    relay = Relay(registry, CheckpointStore(config.state_dir), config.log_dir,
                  client=client,
                  normalizer=Normalizer(ItemCatalog.from_file(config.items_file)),
                  publisher=publisher if publisher.boards else None,
                  encoding=config.encoding,
                  interval=config.poll_interval,
                  first_run=config.first_run,
                  clock=clock)

    disabled = []
    for category in registry.categories():
        destination = config.destination(category)
        if destination is None:
            disabled.append(category)
            continue
        relay.add_category(category, client.target(*destination))
    # boards still need their categories read when nothing is posted from them
    for board, _ in publisher.boards:
        for category in board.categories:
            if category not in relay.states:
                relay.add_category(category)
                disabled.remove(category)
    if disabled:
        log.msg(f"Not relaying (no channel or webhook configured): {', '.join(disabled)}")
    if not client.token and any(s.target is not None and s.target.kind == "channel"
                                for s in relay.states.values()):
        log.msg("Warning: channels configured but no bot token found; those posts will fail")
    return relay


def main(argv=None):
    options = Options()
    try:
        options.parseOptions(argv)
    except usage.UsageError as e:
        print(f"{e}\n{options}")
        return 2

    config = BotConfig()
    try:
        config.fetch(options["config"])
    except ConfigError as e:
        print(f"scumbot: {e}")
        return 1
    start_logging(options["logfile"] or config.logfile, options["debug"])

    relay = build_relay(config)
    reactor.callWhenRunning(relay.start)
    if relay.publisher is not None:
        reactor.callWhenRunning(relay.publisher.start, config.edit_interval)
    reactor.addSystemEventTrigger("before", "shutdown", relay.stop)
    reactor.run()
    return 0


if __name__ == '__main__':
    sys.exit(main())

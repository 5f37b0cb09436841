"""Live boards: messages kept up to date by editing them in place.

Boards watch the event stream (kills, logins) and are re-rendered into one
Discord message each, at most once per edit interval and only when
something changed. The ids of those messages are kept in the state
directory so a restart keeps editing the same messages.
"""

import json

from twisted.internet import defer, reactor, task
from twisted.python import filepath, log

from scumbot.delivery import LiveMessage

BOARD_SIZE = 10


class KillBoard:
    name = "kills"
    title = "Kill leaderboard"
    categories = ("kill", "event_kill")

    def __init__(self, size=BOARD_SIZE):
        self.size = size
        self.kills = {}
        self.deaths = {}
        self.names = {}
        self.dirty = False

    def observe(self, event):
        if event.event_type not in ("kill", "event_kill"):
            return
        killer = event.actor.steam_id or event.actor.name
        victim = event.attributes.get("victim_steam_id") or event.attributes.get("victim")
        if killer:
            self.kills[killer] = self.kills.get(killer, 0) + 1
            self.names[killer] = event.actor.name
        if victim:
            self.deaths[victim] = self.deaths.get(victim, 0) + 1
            self.names.setdefault(victim, event.attributes.get("victim", victim))
        self.dirty = True

    def ranking(self):
        return sorted(self.kills.items(),
                      key=lambda kv: (-kv[1], self.deaths.get(kv[0], 0), self.names.get(kv[0], "")))

    def render(self):
        lines = []
        for place, (who, kills) in enumerate(self.ranking()[:self.size], 1):
            deaths = self.deaths.get(who, 0)
            lines.append(f"{place}. **{self.names.get(who, who)}**: {kills} kills, {deaths} deaths")
        description = "\n".join(lines) or "No kills yet."
        return {"embeds": [{"title": self.title, "description": description, "color": 0xE74C3C}],
                "allowed_mentions": {"parse": []}}


class OnlineBoard:
    name = "online"
    title = "Players online"
    categories = ("login",)

    def __init__(self, size=50):
        self.size = size
        self.online = {}
        self.dirty = False

    def observe(self, event):
        key = event.actor.steam_id or event.actor.name
        if event.event_type == "login":
            self.online[key] = event.actor.name
        elif event.event_type == "logout":
            self.online.pop(key, None)
        else:
            return
        self.dirty = True

    def render(self):
        names = sorted(self.online.values(), key=str.lower)
        shown = names[:self.size]
        description = "\n".join(shown) or "Nobody is online."
        if len(names) > len(shown):
            description += f"\n...and {len(names) - len(shown)} more"
        return {"embeds": [{"title": f"{self.title} ({len(names)})",
                            "description": description, "color": 0x2ECC71}],
                "allowed_mentions": {"parse": []}}


class LiveMessageStore:
    """Message ids of the live boards, one JSON file in the state directory."""

    def __init__(self, state_dir, filename="live_messages.json"):
        self.path = filepath.FilePath(state_dir).child(filename)

    def load(self):
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.getContent().decode("utf-8"))
        except (IOError, OSError, ValueError) as e:
            log.msg(f"Warning: ignoring unreadable {self.path.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def save(self, lives):
        data = {l.name: {"endpoint": l.target.endpoint, "message_id": l.message_id}
                for l in lives if l.message_id}
        parent = self.path.parent()
        if not parent.exists():
            parent.makedirs(ignoreExistingDirectory=True)
        self.path.setContent(json.dumps(data, indent=2).encode("utf-8"), ext=b".tmp")


class BoardPublisher:
    """Feeds events to the boards and pushes changed boards to Discord."""

    def __init__(self, client, store, clock=None):
        self.client = client
        self.store = store
        self.clock = clock or reactor
        self.boards = []
        self.looping_call = None

    def add(self, board, target):
        saved = self.store.load().get(board.name, {})
        message_id = saved.get("message_id") if saved.get("endpoint") == target.endpoint else None
        live = LiveMessage(board.name, target, message_id)
        # publish once at startup even when nothing happened yet
        board.dirty = True
        self.boards.append((board, live))
        return live

    def observe(self, event):
        for board, _ in self.boards:
            board.observe(event)

    @defer.inlineCallbacks
    def publish(self):
        changed = False
        for board, live in self.boards:
            if not board.dirty:
                continue
            before = live.message_id
            result = yield self.client.update_live(live, board.render())
            if result is None:
                continue  # too soon since the last edit, try next time
            if result.success:
                board.dirty = False
            changed = changed or live.message_id != before
        if changed:
            self.store.save([live for _, live in self.boards])

    def _publish(self):
        return self.publish().addErrback(log.err, "Error publishing live boards")

    def start(self, interval):
        if not self.boards:
            return
        self.looping_call = task.LoopingCall(self._publish)
        self.looping_call.clock = self.clock
        self.looping_call.start(interval, now=True)

    def stop(self):
        if self.looping_call is not None and self.looping_call.running:
            self.looping_call.stop()

"""Discord delivery with rate-limit handling.

Every distinct endpoint (a channel's message route, or a webhook) gets one
DeliveryTarget for the life of the process. All categories posting to the
same place share it, and with it the rate-limit budget Discord reports in
the response headers. A DeferredLock per target serialises the requests so
the budget is read and updated by one caller at a time.

HTTP runs in the reactor threadpool and every wait is a deferLater, so a
rate-limited channel never stalls categories posting elsewhere.

One attempt goes Pending -> Sent (2xx)
                         -> RateLimited (429: wait retry_after, try again,
                            at most max_retries attempts in total)
                         -> Failed (any other status, network error,
                            retries used up, or a wait longer than
                            max_retry_wait)
"""

from collections import namedtuple
from urllib.parse import quote

import requests
from twisted.internet import defer, reactor, task, threads
from twisted.python import log

from scumbot import messages

API_BASE = "https://discord.com/api/v10"
USER_AGENT = "DiscordBot (scumbot, 0.1)"
REQUEST_TIMEOUT = 10
MAX_RETRIES = 3
MAX_RETRY_WAIT = 10       # seconds; longer waits are left to the next tick
EDIT_INTERVAL = 30        # seconds between edits of one live message
DEFAULT_RETRY_AFTER = 1.0

DeliveryResult = namedtuple("DeliveryResult",
                            ["success", "retry_after", "status", "message_id", "data"],
                            defaults=(None, None, None, None))


class RateLimitState:
    """What the last responses said about an endpoint's remaining budget."""

    def __init__(self):
        self.remaining = None
        self.reset_at = 0.0

    def update(self, headers, now):
        remaining = headers.get("X-RateLimit-Remaining")
        reset_after = headers.get("X-RateLimit-Reset-After")
        try:
            if remaining is not None:
                self.remaining = int(remaining)
            if reset_after is not None:
                self.reset_at = now + float(reset_after)
        except ValueError:
            log.msg(f"Discord: ignoring odd rate limit headers {remaining!r}/{reset_after!r}")

    def block(self, seconds, now):
        self.remaining = 0
        self.reset_at = max(self.reset_at, now + seconds)

    def wait_time(self, now):
        if self.remaining == 0 and self.reset_at > now:
            return self.reset_at - now
        return 0.0


class DeliveryTarget:
    def __init__(self, endpoint, kind="channel"):
        self.endpoint = endpoint
        self.kind = kind
        self.rate_limit = RateLimitState()
        self.lock = defer.DeferredLock()

    def post_url(self):
        if self.kind == "webhook":
            # wait=true makes the webhook answer with the message, id included
            return self.endpoint + "?wait=true"
        return self.endpoint

    def message_url(self, message_id):
        if self.kind == "webhook":
            return f"{self.endpoint}/messages/{message_id}"
        return f"{self.endpoint}/{message_id}"

    def reactions_url(self, message_id, emoji):
        if self.kind != "channel":
            raise ValueError("webhook messages cannot be queried for reactions")
        return f"{self.message_url(message_id)}/reactions/{quote(emoji)}"

    def __repr__(self):
        return f"<DeliveryTarget {self.kind} {self.endpoint}>"


class LiveMessage:
    """A message that is edited in place (status boards, leaderboards)."""

    def __init__(self, name, target, message_id=None):
        self.name = name
        self.target = target
        self.message_id = message_id
        self.last_edit = None


def retry_after_of(response):
    try:
        body = response.json()
        if isinstance(body, dict) and body.get("retry_after") is not None:
            return float(body["retry_after"]), bool(body.get("global"))
    except ValueError:
        pass
    header = response.headers.get("Retry-After")
    try:
        return float(header), False
    except (TypeError, ValueError):
        return DEFAULT_RETRY_AFTER, False


def message_id_of(response):
    if response.status_code == 204 or not response.content:
        return None, None
    try:
        data = response.json()
    except ValueError:
        return None, None
    if isinstance(data, dict):
        return data.get("id"), data
    return None, data


class DeliveryClient:
    def __init__(self, token=None, api_base=API_BASE, timeout=REQUEST_TIMEOUT,
                 max_retries=MAX_RETRIES, max_retry_wait=MAX_RETRY_WAIT,
                 edit_interval=EDIT_INTERVAL, formatter=messages.render,
                 session=None, clock=None, runner=None):
        self.token = token
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.max_retry_wait = max_retry_wait
        self.edit_interval = edit_interval
        self.formatter = formatter
        self.session = session or requests.Session()
        self.clock = clock or reactor
        self.runner = runner or threads.deferToThread
        self.targets = {}
        # a global 429 stops every route until then
        self.global_until = 0.0

    ### targets

    def target(self, kind, where):
        """The process-wide DeliveryTarget for a channel id or webhook url."""
        if kind == "webhook":
            endpoint = where.rstrip("/")
        elif kind == "channel":
            endpoint = f"{self.api_base}/channels/{where}/messages"
        else:
            raise ValueError(f"unknown target kind {kind!r}")
        if endpoint not in self.targets:
            self.targets[endpoint] = DeliveryTarget(endpoint, kind)
        return self.targets[endpoint]

    def channel(self, channel_id):
        return self.target("channel", channel_id)

    def webhook(self, url):
        return self.target("webhook", url)

    ### plumbing

    def sleep(self, seconds):
        return task.deferLater(self.clock, seconds, lambda: None)

    def headers(self, target):
        headers = {"User-Agent": USER_AGENT}
        if target.kind == "channel" and self.token:
            headers["Authorization"] = f"Bot {self.token}"
        return headers

    def _send(self, method, url, payload, headers):
        return self.session.request(method, url, json=payload, headers=headers,
                                    timeout=self.timeout)

    @defer.inlineCallbacks
    def request(self, target, method, url, payload=None):
        """Issue one call against ``target``, honouring 429s; fires a DeliveryResult."""
        attempt = 0
        while True:
            attempt += 1
            yield target.lock.acquire()
            try:
                now = self.clock.seconds()
                wait = max(target.rate_limit.wait_time(now), self.global_until - now)
                if wait > self.max_retry_wait:
                    log.msg(f"Discord: {target.endpoint} rate limited for {wait:.1f}s, deferring")
                    return DeliveryResult(False, wait)
                if wait > 0:
                    yield self.sleep(wait)
                try:
                    response = yield self.runner(self._send, method, url, payload,
                                                 self.headers(target))
                except requests.exceptions.Timeout:
                    log.msg(f"Discord: timeout on {method} {url}")
                    return DeliveryResult(False)
                except requests.exceptions.RequestException as e:
                    log.msg(f"Discord: error on {method} {url}: {e}")
                    return DeliveryResult(False)
                now = self.clock.seconds()
                target.rate_limit.update(response.headers, now)
                status = response.status_code
                if status == 429:
                    retry_after, is_global = retry_after_of(response)
                    target.rate_limit.block(retry_after, now)
                    if is_global:
                        self.global_until = max(self.global_until, now + retry_after)
            finally:
                target.lock.release()

            if 200 <= status < 300:
                message_id, data = message_id_of(response)
                return DeliveryResult(True, None, status, message_id, data)
            if status != 429:
                log.msg(f"Discord: {method} {url} failed with {status}: {response.text[:200]}")
                return DeliveryResult(False, None, status)
            if attempt >= self.max_retries or retry_after > self.max_retry_wait:
                log.msg(f"Discord: giving up on {method} {url} after {attempt} attempts "
                        f"(retry_after {retry_after:.2f}s)")
                return DeliveryResult(False, retry_after, status)
            log.msg(f"Discord: rate limited on {target.endpoint}, retrying in {retry_after:.2f}s "
                    f"(attempt {attempt}/{self.max_retries})")
            yield self.sleep(retry_after)

    ### operations

    def post(self, target, payload):
        return self.request(target, "POST", target.post_url(), payload)

    def deliver(self, target, event):
        """Post ``event`` to ``target``; fires a DeliveryResult, never errbacks on HTTP trouble."""
        return self.post(target, self.formatter(event))

    @defer.inlineCallbacks
    def update_live(self, live, payload, force=False):
        """Edit ``live`` in place, posting it first if there is nothing to edit.

        Calls closer together than ``edit_interval`` are skipped (fires None).
        """
        now = self.clock.seconds()
        if (not force and live.last_edit is not None
                and now - live.last_edit < self.edit_interval):
            return None
        live.last_edit = now
        if live.message_id:
            result = yield self.request(live.target, "PATCH",
                                        live.target.message_url(live.message_id), payload)
            if result.status != 404:
                return result
            log.msg(f"Discord: live message {live.name} ({live.message_id}) is gone, reposting")
            live.message_id = None
        result = yield self.post(live.target, payload)
        if result.success and result.message_id:
            live.message_id = result.message_id
        return result

    @defer.inlineCallbacks
    def reactions(self, target, message_id, emoji):
        """Ids of the users who reacted to a message with ``emoji``."""
        result = yield self.request(target, "GET", target.reactions_url(message_id, emoji))
        if not result.success or not isinstance(result.data, list):
            return []
        return [str(user.get("id")) for user in result.data if isinstance(user, dict)]

    @defer.inlineCallbacks
    def await_confirmation(self, target, message_id, emoji, allowed=None,
                           timeout=60, interval=2):
        """Poll reactions until one of ``allowed`` (anyone, if None) confirms.

        Fires True on confirmation, False when ``timeout`` seconds pass first.
        """
        allowed = {str(a) for a in allowed} if allowed is not None else None
        deadline = self.clock.seconds() + timeout
        while True:
            users = yield self.reactions(target, message_id, emoji)
            if any(allowed is None or u in allowed for u in users):
                return True
            if self.clock.seconds() + interval > deadline:
                return False
            yield self.sleep(interval)

import toml
from more_itertools import flatten
from pathlib import Path, PurePath
from twisted.python import log

from scumbot.errors import ConfigError

FIRST_RUN_POLICIES = ("tail", "replay")

class GenericDescriptor():
    def __set_name__(self, owner, name):
        self.public_name = name
        self.private_name = '_' + name

    def __get__(self, obj, objtype=None):
        value = getattr(obj, self.private_name)
        return value

    def __set__(self, obj, value):
        setattr(obj, self.private_name, value)

class BotConfig:
    __default_file__ = "scumbot.toml"
    __search_path__ = [
        Path.cwd(),
        Path(__file__).resolve().parent,
        PurePath(Path.home(), '.config'),
        Path("/opt/scumbot/config")
    ]
    # tables kept whole instead of being merged into the top level
    __nested__ = ("channels", "webhooks", "boards")

    log_dir           = GenericDescriptor()
    state_dir         = GenericDescriptor()
    encoding          = GenericDescriptor()
    poll_interval     = GenericDescriptor()
    first_run         = GenericDescriptor()
    items_file        = GenericDescriptor()
    logfile           = GenericDescriptor()
    api_base          = GenericDescriptor()
    token             = GenericDescriptor()
    token_file        = GenericDescriptor()
    timeout           = GenericDescriptor()
    max_retries       = GenericDescriptor()
    max_retry_wait    = GenericDescriptor()
    edit_interval     = GenericDescriptor()
    channels          = GenericDescriptor()
    webhooks          = GenericDescriptor()
    boards            = GenericDescriptor()

    def __init__(self):
        self.log_dir           = "SCUM/Saved/SaveFiles/Logs"
        self.state_dir         = "state"
        self.encoding          = "utf-16"
        self.poll_interval     = 5
        self.first_run         = "tail"
        self.items_file        = None
        self.logfile           = "scumbot.log"
        self.api_base          = "https://discord.com/api/v10"
        self.token             = None
        self.token_file        = "token"
        self.timeout           = 10
        self.max_retries       = 3
        self.max_retry_wait    = 10
        self.edit_interval     = 30
        self.channels          = {}
        self.webhooks          = {}
        self.boards            = {}

    def update(self, dict_obj):
        plain = {k: v for k, v in dict_obj.items() if k not in self.__nested__}
        for key, val in flatten(
            map(lambda x: iter(plain[x].items()),
                iter(plain.keys()))
            ):
                self.__dict__["_" + key] = val
        for key in self.__nested__:
            if key in dict_obj:
                self.__dict__["_" + key] = {str(k): v for k, v in dict_obj[key].items()}

    def from_file(self, file_path=None):
        try:
            self.update(toml.load(file_path))
        except (OSError, toml.TomlDecodeError, AttributeError) as e:
            log.err(f"parsing {file_path}: failed")
            raise ConfigError(f"could not parse {file_path}: {e}") from e
        self.validate(file_path)

    def validate(self, source="config"):
        if self.first_run not in FIRST_RUN_POLICIES:
            raise ConfigError(f"{source}: first_run must be one of "
                              f"{', '.join(FIRST_RUN_POLICIES)}, not {self.first_run!r}")

    def fetch_and_update(self):
        path_join = lambda p: Path(p, self.__default_file__).resolve()
        fexists = lambda f: Path(f).resolve().exists()
        found = next(filter(fexists, map(path_join, iter(self.__search_path__))), None)
        if found is None:
            log.err(f"could not find config file {self.__default_file__} in search path: {self.__search_path__}")
            raise ConfigError(f"{self.__default_file__} not found")
        self.from_file(found)

    def fetch(self, file_path=None):
        if file_path:
            self.from_file(file_path)
        else:
            self.fetch_and_update()

    def bot_token(self):
        """The Discord bot token: inline ``token`` first, then ``token_file``."""
        if self.token:
            return self.token.strip()
        if not self.token_file:
            return None
        try:
            with open(self.token_file, "r") as f:
                return f.read().strip()
        except (IOError, OSError) as e:
            log.msg(f"Warning: Could not read token file {self.token_file}: {e}")
            return None

    def destination(self, category):
        """Where events of ``category`` go, or None when it is switched off.

        Returns ``("channel", id)`` or ``("webhook", url)``; a webhook wins
        when both are configured.
        """
        if self.webhooks.get(category):
            return ("webhook", self.webhooks[category])
        if self.channels.get(category):
            return ("channel", str(self.channels[category]))
        return None

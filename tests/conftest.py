"""Shared fixtures: in-memory stores, a recording publisher and a fixed clock."""
import asyncio
import fnmatch
import re

import orjson
import pytest
from redis.exceptions import ResponseError

from fpw_secrets.conf import SecretsConfig
from fpw_secrets.events import EventEmitter, MemoryPublisher
from fpw_secrets.orchestrator import LifecycleOrchestrator
from fpw_secrets.storage import MemoryObjectStore, arid_key, code_key
from fpw_secrets.vault import SecretWriter

NOW = 1_700_000_000
PHONE = "6095551313"
USER_TOKEN = "user-token-6095551313"
USERDATA_KEY = b"0123456789abcdef0123456789abcdef"

TOPICS = {
    "store_topic": "fpw-store",
    "retrieve_topic": "fpw-retrieve",
    "nuke_topic": "fpw-nuke",
    "sendcode_topic": "fpw-sendcode",
}


class FakeResolver:
    """Deterministic phone <-> token mapping; digits only."""

    def __init__(self):
        self.calls = []

    @staticmethod
    def normalize(phone: str) -> str:
        return re.sub(r"\D", "", phone)

    async def token_from_phone(self, phone: str) -> str:
        self.calls.append(("token_from_phone", phone))
        return f"user-token-{self.normalize(phone)}"

    async def phone_from_token(self, user_token: str) -> str:
        self.calls.append(("phone_from_token", user_token))
        return user_token.removeprefix("user-token-")


class FakeRedis:
    """Dict-backed stand-in for the redis.asyncio calls the package makes.

    Covers plain keys and streams read through consumer groups.
    """

    def __init__(self):
        self.data = {}
        self.streams = {}
        self.groups = {}
        self.closed = False
        self._seq = 0

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value):
        self.data[key] = value

    async def delete(self, key):
        self.data.pop(key, None)

    async def scan_iter(self, match=None):
        for key in list(self.data):
            if fnmatch.fnmatchcase(key, match.replace("\\", "")):
                yield key.encode("utf-8")

    async def xadd(self, name, fields, maxlen=None, approximate=True):
        self._seq += 1
        entry_id = f"{self._seq}-0".encode("utf-8")
        encoded = {k.encode("utf-8"): v for k, v in fields.items()}
        self.streams.setdefault(name, []).append((entry_id, encoded))
        return entry_id

    async def xgroup_create(self, name, groupname, id="$", mkstream=False):
        if (name, groupname) in self.groups:
            raise ResponseError("BUSYGROUP Consumer Group name already exists")
        entries = self.streams.setdefault(name, [])
        start = 0 if id == "0" else len(entries)
        self.groups[(name, groupname)] = {"next": start, "pending": {}}

    async def xreadgroup(self, groupname, consumername, streams, count=None, block=None):
        response = []
        for name, start in streams.items():
            group = self.groups[(name, groupname)]
            if start == ">":
                entries = self.streams[name][group["next"]:][:count]
                group["next"] += len(entries)
                group["pending"].update(entries)
            else:
                entries = list(group["pending"].items())[:count]
            if entries:
                response.append([name.encode("utf-8"), entries])
        if not response and block:
            await asyncio.sleep(0.01)
        return response

    async def xack(self, name, groupname, *ids):
        pending = self.groups[(name, groupname)]["pending"]
        return sum(1 for i in ids if pending.pop(i, None) is not None)

    async def aclose(self):
        self.closed = True


def code_record(code: str, expire_epoch: int, phone: str = PHONE) -> bytes:
    return orjson.dumps({
        "normalizedPhone": phone,
        "code": code,
        "expireEpoch": expire_epoch,
    })


def grant_record(
    expire_epoch: int,
    application: str = "My App",
    user_token: str = USER_TOKEN,
    is_first_time: bool = False,
) -> bytes:
    return orjson.dumps({
        "userToken": user_token,
        "rawApplication": application,
        "normalizedApplication": "".join(c for c in application.lower() if c.isalnum()),
        "expireEpoch": expire_epoch,
        "isFirstTime": is_first_time,
    })


async def put_code(store, code: str, expire_epoch: int, phone: str = PHONE) -> None:
    await store.put(code_key(phone), code_record(code, expire_epoch, phone))


async def put_grant(store, arid_id: str, expire_epoch: int, **kwargs) -> None:
    await store.put(arid_key(arid_id), grant_record(expire_epoch, **kwargs))


@pytest.fixture
def config():
    return SecretsConfig(userdata_key=USERDATA_KEY, **TOPICS)


@pytest.fixture
def resolver():
    return FakeResolver()


@pytest.fixture
def codes_store():
    return MemoryObjectStore()


@pytest.fixture
def grants_store():
    return MemoryObjectStore()


@pytest.fixture
def userdata_store():
    return MemoryObjectStore()


@pytest.fixture
def publisher():
    return MemoryPublisher()


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def emitter(config, publisher):
    return EventEmitter(config, publisher)


@pytest.fixture
def writer(config, userdata_store):
    return SecretWriter(config, userdata_store)


@pytest.fixture
def orchestrator(config, resolver, codes_store, grants_store, userdata_store, publisher, clock):
    return LifecycleOrchestrator.build(
        config,
        resolver,
        codes_store=codes_store,
        grants_store=grants_store,
        userdata_store=userdata_store,
        publisher=publisher,
        clock=clock,
    )


@pytest.fixture
async def seeded_secret(orchestrator, publisher, writer):
    """Store 'hunter22' for "my app" and apply it through the downstream writer."""
    await orchestrator.secrets.store("hunter22", "my app", USER_TOKEN)
    topic, message = publisher.published[-1]
    await writer.handle(message)
    publisher.published.clear()
    return {"secret": "hunter22", "rawApplication": "my app"}


@pytest.fixture
def fake_redis():
    return FakeRedis()

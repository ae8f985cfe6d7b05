"""
HTTP boundary — aiohttp routes over the lifecycle orchestrator.

Every response has the same shape: a JSON object with a ``message`` (plus
the disclosed data on successful reads) and permissive CORS headers.

Status mapping:
    400  malformed JSON, request shape or event schema failure
    401  missing or invalid verification code / grant
    405  unhandled path or method
    500  anything else (store, publish and configuration faults)
"""
import asyncio
import contextlib
import logging
from typing import Any, Optional

import orjson
from aiohttp import web
from pydantic import BaseModel, ValidationError as PydanticValidationError
from redis import asyncio as aioredis

from .conf import SecretsConfig
from .credentials import GrantCredential, VerificationCodeCredential
from .errors import CredentialInvalid, FpwError, ValidationError, status_for
from .events import RedisPublisher, RedisStreamConsumer
from .identity import IdentityResolver
from .models import (
    GrantStoreBody,
    NukeBody,
    RetrieveSecretBody,
    SendCodeBody,
    StoreSecretBody,
    describe_errors,
)
from .orchestrator import LifecycleOrchestrator
from .storage import RedisObjectStore
from .vault import SecretWriter

logger = logging.getLogger("fpw.api")

ORCHESTRATOR = web.AppKey("orchestrator", LifecycleOrchestrator)
STREAM_CONSUMER = web.AppKey("stream_consumer", RedisStreamConsumer)
REDIS = web.AppKey("redis", object)

VERIFICATION_CODE_HEADER = "X-VerificationCode"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "*",
    "Access-Control-Allow-Credentials": "true",
}

routes = web.RouteTableDef()


def gateway_response(status: int, message: str, **extra: Any) -> web.Response:
    """Build the uniform JSON response."""
    body = {"message": message, **extra}
    return web.Response(
        status=status,
        body=orjson.dumps(body),
        content_type="application/json",
        headers=CORS_HEADERS,
    )


async def read_body(request: web.Request, model: type[BaseModel], label: str) -> Any:
    """Parse and shape-validate a JSON request body.

    Raises:
        ValidationError: Body is not JSON or does not match ``model``.
    """
    raw = await request.read()
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError:
        raise ValidationError(f"{label} payload is not valid JSON") from None
    try:
        return model.model_validate(data)
    except PydanticValidationError as err:
        msg = f"{label} payload invalid: {describe_errors(err)}"
        logger.error(msg)
        raise ValidationError(msg) from None


def _orchestrator(request: web.Request) -> LifecycleOrchestrator:
    return request.app[ORCHESTRATOR]


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except web.HTTPNotFound:
        msg = f"Unhandled path requested: {request.path}"
        logger.warning(msg)
        return gateway_response(405, msg)
    except web.HTTPMethodNotAllowed:
        msg = f"Unhandled method requested: {request.method}"
        logger.warning(msg)
        return gateway_response(405, msg)
    except FpwError as err:
        status = status_for(err)
        if status >= 500:
            logger.error("%s: %s", type(err).__name__, err.message)
        else:
            logger.warning("%s: %s", type(err).__name__, err.message)
        return gateway_response(status, err.message)
    except web.HTTPException:
        raise
    except Exception:
        logger.exception("Unhandled error for %s %s", request.method, request.path)
        return gateway_response(500, "Internal server error")


# ---------------------------------------------------------------------------
# Phone-originated routes
# ---------------------------------------------------------------------------

@routes.put("/v1/secrets")
async def store_secret(request: web.Request) -> web.Response:
    body = await read_body(request, StoreSecretBody, "Store secret")
    code = request.headers.get(VERIFICATION_CODE_HEADER)
    if not code:
        logger.warning("Verification code is not present")
        raise CredentialInvalid("Verification code is not present")
    credential = VerificationCodeCredential(phone=body.phone, code=code)
    await _orchestrator(request).store_secret(credential, body.secret, body.application)
    return gateway_response(200, "Successfully posted event")


@routes.post("/v1/secrets")
async def retrieve_secret(request: web.Request) -> web.Response:
    body = await read_body(request, RetrieveSecretBody, "Retrieve secret")
    disclosed = await _orchestrator(request).retrieve_secret(body.phone, body.application)
    return gateway_response(200, "Successfully retrieved secret", **disclosed)


@routes.post("/v1/codes")
async def send_code(request: web.Request) -> web.Response:
    body = await read_body(request, SendCodeBody, "Send code")
    await _orchestrator(request).send_code(body.phone)
    return gateway_response(200, "Successfully posted event")


@routes.post("/v1/nuke")
async def nuke_account(request: web.Request) -> web.Response:
    body = await read_body(request, NukeBody, "Nuke account")
    credential = VerificationCodeCredential(phone=body.phone, code=body.verification_code)
    await _orchestrator(request).nuke(credential)
    return gateway_response(200, "Successfully posted event")


# ---------------------------------------------------------------------------
# Authorized-request (grant) routes
# ---------------------------------------------------------------------------

@routes.get("/v1/authorizedrequests/{arid}")
async def describe_grant(request: web.Request) -> web.Response:
    details = await _orchestrator(request).describe_grant(request.match_info["arid"])
    return gateway_response(200, "Authorized request is valid", **details)


@routes.put("/v1/authorizedrequests/{arid}/secret")
async def store_secret_with_grant(request: web.Request) -> web.Response:
    body = await read_body(request, GrantStoreBody, "Store secret")
    await _orchestrator(request).store_secret_with_grant(
        request.match_info["arid"], body.secret,
    )
    return gateway_response(200, "Successfully posted event")


@routes.post("/v1/authorizedrequests/{arid}/secret")
async def retrieve_secret_with_grant(request: web.Request) -> web.Response:
    disclosed = await _orchestrator(request).retrieve_secret_with_grant(
        request.match_info["arid"],
    )
    return gateway_response(200, "Successfully retrieved secret", **disclosed)


@routes.post("/v1/authorizedrequests/{arid}/nuke")
async def nuke_with_grant(request: web.Request) -> web.Response:
    credential = GrantCredential(arid_id=request.match_info["arid"])
    await _orchestrator(request).nuke(credential)
    return gateway_response(200, "Successfully posted event")


# ---------------------------------------------------------------------------
# Application factories
# ---------------------------------------------------------------------------

def create_app(orchestrator: LifecycleOrchestrator) -> web.Application:
    app = web.Application(middlewares=[error_middleware])
    app[ORCHESTRATOR] = orchestrator
    app.add_routes(routes)
    return app


async def _consume_events(app: web.Application):
    """Run the stream consumer for the lifetime of the application."""
    task = asyncio.create_task(app[STREAM_CONSUMER].run())
    yield
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


async def _close_redis(app: web.Application) -> None:
    await app[REDIS].aclose()
    logger.info("Redis connection closed")


def create_redis_app(
    config: SecretsConfig,
    resolver: IdentityResolver,
    redis: Optional[Any] = None,
    *,
    consume: bool = True,
) -> web.Application:
    """Build the application over Redis-backed stores and streams.

    One client is shared by the three stores, the publisher and the stream
    consumer. With ``consume`` set, a ``SecretWriter`` applies the store and
    nuke streams in a background task, so a stored secret becomes readable
    without a separate worker process.

    Args:
        config: Immutable deployment configuration.
        resolver: Phone to user-token resolver.
        redis: Existing redis.asyncio client. When omitted, one is created
            from ``config.redis_url`` and closed on application cleanup.
        consume: Run the store/nuke stream consumer inside this process.
    """
    owned = redis is None
    if owned:
        redis = aioredis.from_url(config.redis_url)
    userdata = RedisObjectStore(redis, config.userdata_namespace)
    orchestrator = LifecycleOrchestrator.build(
        config,
        resolver,
        codes_store=RedisObjectStore(redis, config.codes_namespace),
        grants_store=RedisObjectStore(redis, config.authreq_namespace),
        userdata_store=userdata,
        publisher=RedisPublisher(redis),
    )
    app = create_app(orchestrator)

    streams = [t for t in (config.store_topic, config.nuke_topic) if t]
    if consume and streams:
        writer = SecretWriter(config, userdata)
        app[STREAM_CONSUMER] = RedisStreamConsumer(redis, streams, writer.handle)
        app.cleanup_ctx.append(_consume_events)
    if owned:
        app[REDIS] = redis
        app.on_cleanup.append(_close_redis)
    return app

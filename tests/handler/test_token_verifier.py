import pytest

from cloud_tasks.exceptions import HandlingErrorKind, UnauthorizedError
from cloud_tasks.handler.service.openid import TokenDecodeError
from cloud_tasks.handler.service.token_verifier import (
    EMULATOR_ISSUERS,
    TokenVerifier,
    extract_bearer_token,
)
from cloud_tasks.models.dto import DecodedToken

HANDLER_URL = "https://app.example.com/handle-task"
NOW = 1_700_000_000


class StubDecoder:
    def __init__(self, token=None, error=None):
        self.token = token
        self.error = error
        self.seen = []

    async def decode(self, token):
        self.seen.append(token)
        if self.error:
            raise self.error
        return self.token


def claims(**overrides):
    data = {"iss": "https://accounts.google.com", "aud": HANDLER_URL, "exp": NOW + 300}
    data.update(overrides)
    return DecodedToken(**data)


def verifier(decoder, emulated=False):
    return TokenVerifier.for_mode(decoder, emulated=emulated, clock=lambda: NOW)


@pytest.mark.parametrize(
    "header,expected",
    [
        ("Bearer abc.def.ghi", "abc.def.ghi"),
        ("bearer abc", "abc"),
        ("Basic dXNlcjpwYXNz", None),
        ("Bearer ", None),
        ("", None),
        (None, None),
    ],
)
def test_extract_bearer_token(header, expected):
    assert extract_bearer_token(header) == expected


@pytest.mark.asyncio
async def test_valid_token_passes(connection_config):
    decoder = StubDecoder(claims())

    decoded = await verifier(decoder).verify("Bearer tok", connection_config)

    assert decoded.aud == HANDLER_URL
    assert decoder.seen == ["tok"]


@pytest.mark.asyncio
async def test_short_issuer_form_is_accepted(connection_config):
    decoder = StubDecoder(claims(iss="accounts.google.com"))

    await verifier(decoder).verify("Bearer tok", connection_config)


@pytest.mark.asyncio
async def test_missing_header_is_unauthorized(connection_config):
    decoder = StubDecoder(claims())

    with pytest.raises(UnauthorizedError) as exc:
        await verifier(decoder).verify(None, connection_config)

    assert exc.value.kind is HandlingErrorKind.UNAUTHORIZED
    assert exc.value.status_code == 401
    assert decoder.seen == []


@pytest.mark.asyncio
async def test_non_bearer_header_is_unauthorized(connection_config):
    with pytest.raises(UnauthorizedError):
        await verifier(StubDecoder(claims())).verify("Basic abc", connection_config)


@pytest.mark.asyncio
async def test_undecodable_token_is_unauthorized(connection_config):
    decoder = StubDecoder(error=TokenDecodeError("Token signature is not valid"))

    with pytest.raises(UnauthorizedError) as exc:
        await verifier(decoder).verify("Bearer tok", connection_config)

    assert exc.value.reason == "Token signature is not valid"
    # public message never reveals the reason
    assert exc.value.message == "The given OpenID token is not valid"


@pytest.mark.asyncio
async def test_wrong_issuer_is_unauthorized(connection_config):
    decoder = StubDecoder(claims(iss="https://evil.example.com"))

    with pytest.raises(UnauthorizedError) as exc:
        await verifier(decoder).verify("Bearer tok", connection_config)

    assert exc.value.reason == "Issuer is not allowed"


@pytest.mark.asyncio
async def test_wrong_audience_is_unauthorized(connection_config):
    decoder = StubDecoder(claims(aud="https://other.example.com/handle-task"))

    with pytest.raises(UnauthorizedError) as exc:
        await verifier(decoder).verify("Bearer tok", connection_config)

    assert exc.value.reason == "Audience does not match handler"


@pytest.mark.asyncio
async def test_expired_token_is_unauthorized(connection_config):
    decoder = StubDecoder(claims(exp=NOW - 1))

    with pytest.raises(UnauthorizedError) as exc:
        await verifier(decoder).verify("Bearer tok", connection_config)

    assert exc.value.reason == "Token has expired"


@pytest.mark.asyncio
async def test_token_expiring_now_is_still_valid(connection_config):
    await verifier(StubDecoder(claims(exp=NOW))).verify("Bearer tok", connection_config)


@pytest.mark.asyncio
async def test_emulated_mode_accepts_only_emulator_issuer(connection_config):
    emulator_issuer = next(iter(EMULATOR_ISSUERS))

    await verifier(StubDecoder(claims(iss=emulator_issuer)), emulated=True).verify(
        "Bearer tok", connection_config
    )

    with pytest.raises(UnauthorizedError):
        await verifier(StubDecoder(claims()), emulated=True).verify("Bearer tok", connection_config)

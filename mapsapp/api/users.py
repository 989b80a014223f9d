"""
Account registration against the MapsApp backend.

Responsible for:
- Validating the registration form before anything is sent
- Creating the user and translating backend rejections into a user-facing message
"""
import asyncio
import logging

import voluptuous as vol

from mapsapp.const import API_BASE_URL, USERS_PATH, REGISTER_TIMEOUT, REGISTER_FAILED_MESSAGE
from mapsapp.errors import ProfileSaveFailed
from mapsapp.requests import make_request, build_url, ApiResponseError

_LOGGER = logging.getLogger(__name__)

ACCOUNT_TYPES = ("trabajador", "cliente")

non_blank = vol.All(str, vol.Strip, vol.Length(min=1))
email_validator = vol.All(str, vol.Strip, vol.Length(min=1), vol.Match(r"^[^@\s]+@[^@\s]+\.[^@\s]+$"))

REGISTRATION_SCHEMA = vol.Schema(
    {
        vol.Required("nombre"): non_blank,
        vol.Required("apellido"): non_blank,
        vol.Required("dni"): vol.All(str, vol.Match(r"^\d{8}$", msg="dni must have exactly 8 digits")),
        vol.Required("email"): email_validator,
        vol.Required("password"): vol.All(str, vol.Length(min=6)),
        vol.Required("tipo", default="trabajador"): vol.In(ACCOUNT_TYPES),
    }
)


def validate_registration(data: dict) -> dict:
    """
    Validate and normalise a registration form.

    Raises ProfileSaveFailed naming the first invalid field.
    """
    try:
        return REGISTRATION_SCHEMA(dict(data))
    except vol.Invalid as e:
        field = e.path[0] if e.path else "form"
        raise ProfileSaveFailed(f"Invalid field: {field}") from e


async def register_user(data: dict, base_url: str = API_BASE_URL) -> dict:
    """
    Create a new account.

    Returns the backend's JSON body. Any failure raises ProfileSaveFailed
    with a message fit for an alert; nothing is retried.

    Corresponding CURL command:
    curl -X 'POST' '<base>/usuarios' -H 'Content-Type: application/json' \\
         -d '{"nombre": .., "apellido": .., "dni": .., "email": .., "password": .., "tipo": ..}'
    """
    payload = validate_registration(data)
    url = build_url(base_url, USERS_PATH)
    headers = {"Content-Type": "application/json"}
    try:
        return await make_request(
            "POST", url, headers, payload=payload, timeout=REGISTER_TIMEOUT, max_attempts=1
        )
    except ApiResponseError as e:
        _LOGGER.warning("Registration rejected: %s", e)
        raise ProfileSaveFailed(e.user_message() or REGISTER_FAILED_MESSAGE) from e
    except (asyncio.TimeoutError, TimeoutError) as e:
        _LOGGER.warning("Timeout while registering %s", payload["email"])
        raise ProfileSaveFailed(REGISTER_FAILED_MESSAGE) from e
    except ValueError as e:
        _LOGGER.warning("Unexpected registration response: %s", e)
        raise ProfileSaveFailed(REGISTER_FAILED_MESSAGE) from e

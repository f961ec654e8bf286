"""
Configuration flow for MELCloud ATA integration.

The user step logs in with the MELCloud account and stores the credentials
together with the context key the login returns. The reauth step asks for a
new password when the stored credentials stop working.
"""

import logging
from collections.abc import Mapping
from typing import Any

import httpx
import voluptuous as vol
from homeassistant.config_entries import ConfigFlow, ConfigFlowResult
from homeassistant.const import CONF_EMAIL, CONF_PASSWORD
from homeassistant.helpers.httpx_client import get_async_client

from . import api
from .const import (
    CONF_CONTEXT_KEY,
    DOMAIN,
    ERROR_API_ERROR,
    ERROR_CANNOT_CONNECT,
    ERROR_INVALID_AUTH,
    ERROR_TIMEOUT,
    ERROR_UNKNOWN,
)

_LOGGER = logging.getLogger(__name__)

USER_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_EMAIL): str,
        vol.Required(CONF_PASSWORD): str,
    }
)
REAUTH_SCHEMA = vol.Schema({vol.Required(CONF_PASSWORD): str})


class MelCloudAtaConfigFlow(ConfigFlow, domain=DOMAIN):
    """Handle configuration flow for MELCloud ATA integration."""

    VERSION = 1

    async def _async_login(
        self, email: str, password: str
    ) -> tuple[str | None, str | None]:
        """Log in and map failures to form error keys.

        Returns:
            A tuple of (context_key, error). Exactly one of them is set.

        """
        try:
            context_key = await api.async_login(
                get_async_client(self.hass), email, password
            )
        except api.MelCloudApiAuthError as err:
            _LOGGER.warning("Authentication failed (%s): %s", ERROR_INVALID_AUTH, err)
            return None, ERROR_INVALID_AUTH
        except httpx.ConnectError:
            _LOGGER.exception("Connection error (%s)", ERROR_CANNOT_CONNECT)
            return None, ERROR_CANNOT_CONNECT
        except httpx.TimeoutException:
            _LOGGER.exception("Timeout error (%s)", ERROR_TIMEOUT)
            return None, ERROR_TIMEOUT
        except api.MelCloudApiClientError:
            _LOGGER.exception("API client error (%s)", ERROR_API_ERROR)
            return None, ERROR_API_ERROR
        except Exception:
            _LOGGER.exception(
                "Unexpected error during authentication (%s)", ERROR_UNKNOWN
            )
            return None, ERROR_UNKNOWN

        _LOGGER.info("Successfully authenticated with MELCloud API")
        return context_key, None

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """
        Handle the initial step of the config flow.

        Args:
            user_input: User input data containing email and password.

        Returns:
            ConfigFlowResult indicating the next step or errors.

        """
        errors: dict[str, str] = {}

        if user_input is not None:
            email = user_input[CONF_EMAIL]
            password = user_input[CONF_PASSWORD]

            context_key, error = await self._async_login(email, password)
            if error is not None:
                errors["base"] = error
            else:
                await self.async_set_unique_id(email.lower())
                self._abort_if_unique_id_configured()

                return self.async_create_entry(
                    title=f"MELCloud ({email})",
                    data={
                        CONF_EMAIL: email,
                        CONF_PASSWORD: password,
                        CONF_CONTEXT_KEY: context_key,
                    },
                )

        return self.async_show_form(
            step_id="user", data_schema=USER_SCHEMA, errors=errors
        )

    async def async_step_reauth(
        self, entry_data: Mapping[str, Any]
    ) -> ConfigFlowResult:
        """Start reauthentication after the stored credentials were rejected."""
        _LOGGER.info("Reauthentication requested for %s", entry_data.get(CONF_EMAIL))
        return await self.async_step_reauth_confirm()

    async def async_step_reauth_confirm(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Ask for a new password and store the refreshed credentials."""
        errors: dict[str, str] = {}
        entry = self._get_reauth_entry()
        email = entry.data[CONF_EMAIL]

        if user_input is not None:
            password = user_input[CONF_PASSWORD]
            context_key, error = await self._async_login(email, password)
            if error is not None:
                errors["base"] = error
            else:
                return self.async_update_reload_and_abort(
                    entry,
                    data_updates={
                        CONF_PASSWORD: password,
                        CONF_CONTEXT_KEY: context_key,
                    },
                )

        return self.async_show_form(
            step_id="reauth_confirm",
            data_schema=REAUTH_SCHEMA,
            description_placeholders={CONF_EMAIL: email},
            errors=errors,
        )

"""
OpenStack connection helper.

Each region gets its own ``openstack.connection.Connection``; the Keystone
flavour is picked from ``Settings.identity_api_version`` when the factory is
built, not discovered at call time.
"""

import logging
import threading
from typing import Callable

import openstack
from openstack.connection import Connection

from sgbridge.config import IdentityApiVersion, Settings

logger = logging.getLogger(__name__)


def _keystone_v2(settings: Settings) -> dict:
    return {
        "auth_type": "v2password",
        "identity_api_version": "2.0",
        "auth": {
            "auth_url": settings.os_auth_url,
            "username": settings.os_username,
            "password": settings.os_password,
            "tenant_name": settings.os_project_name,
        },
    }


def _keystone_v3(settings: Settings) -> dict:
    return {
        "auth_type": "v3password",
        "identity_api_version": "3",
        "auth": {
            "auth_url": settings.os_auth_url,
            "username": settings.os_username,
            "password": settings.os_password,
            "project_name": settings.os_project_name,
            "user_domain_name": settings.os_user_domain_name,
            "project_domain_name": settings.os_project_domain_name,
        },
    }


AUTH_STRATEGIES: dict[IdentityApiVersion, Callable[[Settings], dict]] = {
    IdentityApiVersion.V2: _keystone_v2,
    IdentityApiVersion.V3: _keystone_v3,
}


class ConnectionFactory:
    """
    Lazily opens and caches one connection per region.

    Nothing touches the network until the first call for a region, so
    importing the application does not require live credentials.
    """

    def __init__(self, settings: Settings) -> None:
        self._options = AUTH_STRATEGIES[settings.identity_api_version](settings)
        self._connections: dict[str, Connection] = {}
        self._lock = threading.Lock()

    def __call__(self, region: str) -> Connection:
        with self._lock:
            conn = self._connections.get(region)
            if conn is None:
                logger.info(
                    "Opening OpenStack connection for region '%s' (%s)",
                    region,
                    self._options["auth_type"],
                )
                conn = openstack.connect(
                    region_name=region,
                    load_yaml_config=False,
                    load_envvars=False,
                    **self._options,
                )
                self._connections[region] = conn
            return conn

    def close(self) -> None:
        with self._lock:
            for conn in self._connections.values():
                conn.close()
            self._connections.clear()

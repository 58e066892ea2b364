"""Nova (OpenStack compute) implementation of InstanceDirectory."""

import logging
from typing import Callable, Optional

import keystoneauth1.exceptions
import openstack.exceptions
from openstack.connection import Connection

from sgbridge.dao.base import InstanceDirectory
from sgbridge.errors import TransportError
from sgbridge.schemas.vendor import Instance

logger = logging.getLogger(__name__)


class NovaInstanceDirectory(InstanceDirectory):
    def __init__(self, connect: Callable[[str], Connection]) -> None:
        self._connect = connect

    def get_instance(self, region: str, local_id: str) -> Optional[Instance]:
        try:
            server = self._connect(region).compute.get_server(local_id)
        except openstack.exceptions.ResourceNotFound:
            logger.debug("Server %s not found in %s", local_id, region)
            return None
        except (
            openstack.exceptions.SDKException,
            keystoneauth1.exceptions.ClientException,
        ) as exc:
            logger.error("Failed to fetch server %s in %s: %s", local_id, region, exc)
            raise TransportError(f"OpenStack call 'get_server' failed for {local_id}", exc) from exc

        return Instance(id=server.id, name=server.name or "", tags=frozenset(server.tags or []))

# src/inproto/services/push.py
"""Web Push delivery with a VAPID application server identity."""

from __future__ import annotations

import base64
import logging
from typing import Protocol

import requests
from cryptography.hazmat.primitives import serialization
from py_vapid import Vapid
from pywebpush import WebPushException, webpush

from inproto.core.errors import PushDeliveryError
from inproto.core.settings import settings
from inproto.repositories.relay_state import RelayStateRepository, VapidConfig
from inproto.repositories.subscriptions import SubscriptionBinding

logger = logging.getLogger(__name__)


class PushTransport(Protocol):
    """Anything able to deliver an opaque payload to one bound endpoint."""

    def send(self, binding: SubscriptionBinding, payload: str) -> None:
        """Deliver ``payload`` or raise :class:`PushDeliveryError`."""


def generate_vapid_keys(subject: str) -> VapidConfig:
    """Create a new P-256 VAPID keypair.

    The public key is the URL-safe base64 uncompressed point browsers expect as
    ``applicationServerKey``; the private key is kept as PEM.
    """
    vapid = Vapid()
    vapid.generate_keys()
    public_raw = vapid.public_key.public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint,
    )
    return VapidConfig(
        public_key=base64.urlsafe_b64encode(public_raw).decode().rstrip("="),
        private_key=vapid.private_pem().decode(),
        subject=subject,
    )


def ensure_vapid_config(
    repository: RelayStateRepository,
    subject: str | None = None,
) -> VapidConfig:
    """Load the stored VAPID configuration, generating and persisting it on first use."""
    subject = subject or settings.vapid_subject
    config = repository.load_vapid_config()
    if config is None or not config.public_key or not config.private_key:
        config = generate_vapid_keys(subject)
        repository.save_vapid_config(config)
        logger.info("Generated new VAPID keypair")
        return config
    if not config.subject:
        config = VapidConfig(public_key=config.public_key, private_key=config.private_key, subject=subject)
        repository.save_vapid_config(config)
    return config


class WebPushTransport:
    """Push transport backed by ``pywebpush``."""

    def __init__(
        self,
        config: VapidConfig,
        *,
        timeout: float | None = None,
        ttl: int | None = None,
    ) -> None:
        self._config = config
        self._vapid = Vapid.from_pem(config.private_key.encode())
        self._timeout = settings.push_timeout_seconds if timeout is None else timeout
        self._ttl = settings.push_ttl_seconds if ttl is None else ttl

    @property
    def public_key(self) -> str:
        return self._config.public_key

    def send(self, binding: SubscriptionBinding, payload: str) -> None:
        try:
            webpush(
                subscription_info=binding.subscription_info(),
                data=payload,
                vapid_private_key=self._vapid,
                # pywebpush fills in aud/exp, so every call gets its own claims dict.
                vapid_claims={"sub": self._config.subject},
                ttl=self._ttl,
                timeout=self._timeout,
            )
        except WebPushException as err:
            status_code = getattr(err.response, "status_code", None)
            raise PushDeliveryError(str(err), status_code=status_code) from err
        except requests.RequestException as err:
            raise PushDeliveryError(f"Push transport error: {err}") from err
        except (ValueError, TypeError) as err:
            # Undecodable subscriber keys fail while the payload is encrypted.
            raise PushDeliveryError(f"Unable to encrypt push payload: {err}") from err

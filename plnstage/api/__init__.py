"""Deposit protocol endpoints."""

from plnstage.api.app import create_app
from plnstage.api.handler import IngestProtocolHandler, SwordUrls

__all__ = ["create_app", "IngestProtocolHandler", "SwordUrls"]

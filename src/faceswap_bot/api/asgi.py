"""ASGI entrypoint for the face swap bot API."""

from faceswap_bot.api.app import create_app
from faceswap_bot.containers import build_container

app = create_app(build_container())

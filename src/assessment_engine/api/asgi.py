"""ASGI entrypoint for the assessment API."""

from assessment_engine.api.app import create_app
from assessment_engine.containers import build_container

app = create_app(build_container())

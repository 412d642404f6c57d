from fastapi import Request

from scanner_adapter.config import Config, BuildInfo
from scanner_adapter.enqueuer import Enqueuer
from scanner_adapter.store import Store
from scanner_adapter.trivy.wrapper import Wrapper


def get_config(request: Request) -> Config:
    return request.app.state.config


def get_build_info(request: Request) -> BuildInfo:
    return request.app.state.build_info


def get_enqueuer(request: Request) -> Enqueuer:
    return request.app.state.enqueuer


def get_store(request: Request) -> Store:
    return request.app.state.store


def get_wrapper(request: Request) -> Wrapper:
    return request.app.state.wrapper

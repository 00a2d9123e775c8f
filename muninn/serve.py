# muninn/serve.py
import socket
from typing import Optional, Tuple

import uvicorn

from . import config

APP = "muninn.app:app"


def bind_listener(host: str, port: int) -> Tuple[uvicorn.Server, socket.socket]:
    """
    Bind the socket before serving. A port that is already taken makes
    uvicorn log the error and raise SystemExit(1); no other port is tried.
    """
    cfg = uvicorn.Config(APP, host=host, port=port, log_level=config.LOG_LEVEL)
    sock = cfg.bind_socket()
    return uvicorn.Server(cfg), sock


def main(host: Optional[str] = None, port: Optional[int] = None) -> None:
    server, sock = bind_listener(
        host or config.HOST,
        port if port is not None else config.PORT,
    )
    server.run(sockets=[sock])


if __name__ == "__main__":
    main()
